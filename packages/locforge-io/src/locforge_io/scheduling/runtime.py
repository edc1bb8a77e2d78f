"""Real-time scheduler running steps as asyncio tasks."""

from __future__ import annotations

import asyncio
import contextvars

from locforge_core.ports.scheduler import (
    DeadLetterHandler,
    SchedulerProtocol,
    StepHandler,
)
from locforge_core.ports.workflow import TransientError
from locforge_core.telemetry import WorkflowTelemetry
from locforge_io.scheduling.retry import (
    DeadLetter,
    backoff_delay_ms,
    emit_retry_decision,
)
from locforge_schemas.config import RetryConfig


class AsyncioScheduler(SchedulerProtocol):
    """Scheduler that sleeps for the requested delay, then runs the step.

    Steps of different workflows interleave freely on the running event loop;
    `drain` waits until no step is pending, including steps scheduled by
    the steps it waited for.
    """

    def __init__(
        self,
        *,
        retry: RetryConfig | None = None,
        telemetry: WorkflowTelemetry | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            retry: Retry policy for steps raising TransientError.
            telemetry: Optional emitter for retry and dead-letter logs.
        """
        self._retry = retry or RetryConfig()
        self._telemetry = telemetry or WorkflowTelemetry()
        self._handlers: dict[str, StepHandler] = {}
        self._dead_letter_handlers: dict[str, DeadLetterHandler] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._dead_letters: list[DeadLetter] = []

    @property
    def dead_letters(self) -> list[DeadLetter]:
        """Return a copy of dead-lettered steps."""
        return list(self._dead_letters)

    def register(
        self,
        step_name: str,
        handler: StepHandler,
        *,
        on_dead_letter: DeadLetterHandler | None = None,
    ) -> None:
        """Bind a step name to its handler and optional dead-letter hook.

        Raises:
            ValueError: If the step name is already registered.
        """
        if step_name in self._handlers:
            raise ValueError(f"Step {step_name!r} is already registered")
        self._handlers[step_name] = handler
        if on_dead_letter is not None:
            self._dead_letter_handlers[step_name] = on_dead_letter

    async def schedule(self, step_name: str, delay_ms: int, args: str) -> None:
        """Start a task that runs the step after `delay_ms`.

        Raises:
            ValueError: If no handler is registered for the step name.
        """
        if step_name not in self._handlers:
            raise ValueError(f"No handler registered for step {step_name!r}")
        self._spawn(step_name, delay_ms, args, attempt=0)

    async def drain(self) -> None:
        """Wait until every scheduled step, and every step it scheduled, ran."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _spawn(self, step_name: str, delay_ms: int, args: str, *, attempt: int) -> None:
        # A fresh context keeps the step out of any transaction open in the
        # scheduling task; its own transactions wait for that one to commit.
        task = asyncio.create_task(
            self._run(step_name, delay_ms, args, attempt),
            context=contextvars.Context(),
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(
        self, step_name: str, delay_ms: int, args: str, attempt: int
    ) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
        attempt += 1
        try:
            await self._handlers[step_name](args)
        except TransientError as exc:
            if attempt > self._retry.max_retries:
                await self._dead_letter(step_name, args, attempt, exc)
                return
            delay = backoff_delay_ms(self._retry, attempt)
            await emit_retry_decision(
                self._telemetry, step_name, args, attempt, exc, delay
            )
            self._spawn(step_name, delay, args, attempt=attempt)
        except Exception as exc:
            await self._dead_letter(step_name, args, attempt, exc)

    async def _dead_letter(
        self, step_name: str, args: str, attempt: int, error: Exception
    ) -> None:
        self._dead_letters.append(
            DeadLetter(
                step_name=step_name,
                args=args,
                attempts=attempt,
                error_message=str(error) or type(error).__name__,
            )
        )
        await emit_retry_decision(
            self._telemetry, step_name, args, attempt, error, None
        )
        on_dead_letter = self._dead_letter_handlers.get(step_name)
        if on_dead_letter is not None:
            await on_dead_letter(args, error)
