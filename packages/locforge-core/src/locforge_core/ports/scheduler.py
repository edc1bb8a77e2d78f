"""Protocol definition for the durable, at-least-once step scheduler."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

type StepHandler = Callable[[str], Awaitable[None]]
type DeadLetterHandler = Callable[[str, Exception], Awaitable[None]]


@runtime_checkable
class SchedulerProtocol(Protocol):
    """Protocol for a host scheduler.

    A scheduled step runs at least once after `delay_ms`; there is no
    ordering guarantee between separate `schedule` calls. Step arguments are
    JSON text so every step survives a process restart. A step the scheduler
    gives up on (retries exhausted, or an error outside the retry policy) is
    handed to the `on_dead_letter` hook registered with its handler.
    """

    def register(
        self,
        step_name: str,
        handler: StepHandler,
        *,
        on_dead_letter: DeadLetterHandler | None = None,
    ) -> None:
        """Bind a step name to the coroutine that executes it."""
        raise NotImplementedError

    async def schedule(self, step_name: str, delay_ms: int, args: str) -> None:
        """Submit a step for later execution."""
        raise NotImplementedError
