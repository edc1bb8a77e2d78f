"""Table store adapters."""

from locforge_io.tables.memory import InMemoryTableStore, InMemoryTransaction

__all__ = ["InMemoryTableStore", "InMemoryTransaction"]
