"""Deterministic in-process scheduler with a virtual clock.

Steps are queued by due time and run one at a time by `run_until_idle`, so
a whole multi-step workflow can be driven to completion inside a test or a
CLI command. An optional duplicate predicate re-enqueues chosen steps a
second time to exercise at-least-once delivery.
"""

from __future__ import annotations

import heapq
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count

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

DEFAULT_MAX_STEPS = 10_000

type DuplicatePredicate = Callable[[str, str], bool]


@dataclass(order=True, slots=True)
class _QueuedStep:
    due_ms: int
    sequence: int
    step_name: str = field(compare=False)
    args: str = field(compare=False)
    attempt: int = field(default=0, compare=False)


class InMemoryScheduler(SchedulerProtocol):
    """Scheduler that runs queued steps on demand against a virtual clock."""

    def __init__(
        self,
        *,
        retry: RetryConfig | None = None,
        telemetry: WorkflowTelemetry | None = None,
        duplicate: DuplicatePredicate | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            retry: Retry policy for steps raising TransientError.
            telemetry: Optional emitter for retry and dead-letter logs.
            duplicate: Predicate on (step_name, args); True delivers the
                step twice.
        """
        self._retry = retry or RetryConfig()
        self._telemetry = telemetry or WorkflowTelemetry()
        self._duplicate = duplicate
        self._handlers: dict[str, StepHandler] = {}
        self._dead_letter_handlers: dict[str, DeadLetterHandler] = {}
        self._queue: list[_QueuedStep] = []
        self._sequence = count()
        self._now_ms = 0
        self._delivered = 0
        self._dead_letters: list[DeadLetter] = []

    @property
    def now_ms(self) -> int:
        """Current virtual time in milliseconds."""
        return self._now_ms

    @property
    def pending(self) -> int:
        """Number of queued deliveries."""
        return len(self._queue)

    @property
    def delivered(self) -> int:
        """Number of deliveries executed so far, retries included."""
        return self._delivered

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
        """Queue a step to run `delay_ms` after the current virtual time.

        Raises:
            ValueError: If no handler is registered for the step name.
        """
        if step_name not in self._handlers:
            raise ValueError(f"No handler registered for step {step_name!r}")
        self._enqueue(step_name, delay_ms, args)
        if self._duplicate is not None and self._duplicate(step_name, args):
            self._enqueue(step_name, delay_ms, args)

    async def run_next(self) -> bool:
        """Deliver the earliest due step.

        Returns:
            bool: False when the queue was empty.
        """
        if not self._queue:
            return False
        queued = heapq.heappop(self._queue)
        self._now_ms = max(self._now_ms, queued.due_ms)
        self._delivered += 1
        attempt = queued.attempt + 1
        try:
            await self._handlers[queued.step_name](queued.args)
        except TransientError as exc:
            if attempt > self._retry.max_retries:
                await self._dead_letter(queued, attempt, exc)
                return True
            delay_ms = backoff_delay_ms(self._retry, attempt)
            await emit_retry_decision(
                self._telemetry, queued.step_name, queued.args, attempt, exc, delay_ms
            )
            self._enqueue(queued.step_name, delay_ms, queued.args, attempt=attempt)
        except Exception as exc:
            await self._dead_letter(queued, attempt, exc)
        return True

    async def run_until_idle(self, max_steps: int = DEFAULT_MAX_STEPS) -> int:
        """Deliver steps until the queue is empty.

        Args:
            max_steps: Upper bound on deliveries, guarding against livelock.

        Returns:
            int: Number of deliveries executed.

        Raises:
            RuntimeError: If the queue is still busy after `max_steps`.
        """
        executed = 0
        while self._queue:
            if executed >= max_steps:
                raise RuntimeError(
                    f"Scheduler still has {len(self._queue)} steps after "
                    f"{max_steps} deliveries"
                )
            await self.run_next()
            executed += 1
        return executed

    def _enqueue(
        self, step_name: str, delay_ms: int, args: str, *, attempt: int = 0
    ) -> None:
        heapq.heappush(
            self._queue,
            _QueuedStep(
                due_ms=self._now_ms + max(delay_ms, 0),
                sequence=next(self._sequence),
                step_name=step_name,
                args=args,
                attempt=attempt,
            ),
        )

    async def _dead_letter(
        self, queued: _QueuedStep, attempt: int, error: Exception
    ) -> None:
        self._dead_letters.append(
            DeadLetter(
                step_name=queued.step_name,
                args=queued.args,
                attempts=attempt,
                error_message=str(error) or type(error).__name__,
            )
        )
        await emit_retry_decision(
            self._telemetry, queued.step_name, queued.args, attempt, error, None
        )
        on_dead_letter = self._dead_letter_handlers.get(queued.step_name)
        if on_dead_letter is not None:
            await on_dead_letter(queued.args, error)
