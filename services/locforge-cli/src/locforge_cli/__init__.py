"""locforge-cli: command-line interface for the locforge engine."""
