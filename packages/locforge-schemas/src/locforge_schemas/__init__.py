"""locforge-schemas: Pydantic models shared by the locforge batch engine."""
