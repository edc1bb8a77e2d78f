"""Scheduler adapters for trampolined workflow steps."""

from locforge_io.scheduling.memory import InMemoryScheduler
from locforge_io.scheduling.retry import DeadLetter, backoff_delay_ms
from locforge_io.scheduling.runtime import AsyncioScheduler

__all__ = [
    "AsyncioScheduler",
    "DeadLetter",
    "InMemoryScheduler",
    "backoff_delay_ms",
]
