"""Package version for the locforge engine."""

VERSION = "0.1.0"
