"""Trampolined workflow driver for resumable multi-stage batch work.

A workflow is a fixed, ordered list of named stages. Each scheduled step
processes one bounded page of one stage and then re-submits the next step
through the host scheduler, so no single step ever walks a whole collection.
Step arguments are serialized to JSON and parsed back on delivery; everything
a later step needs travels in the step's context.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from pydantic import ValidationError

from locforge_core.codec import CodecError
from locforge_core.ports.scheduler import SchedulerProtocol
from locforge_core.ports.storage import StorageError
from locforge_core.ports.workflow import (
    TransientError,
    WorkflowError,
    WorkflowErrorCode,
    build_stage_log,
    build_step_ignored_log,
    build_workflow_completed_log,
    build_workflow_failed_log,
    build_workflow_resumed_log,
    build_workflow_started_log,
    workflow_error,
)
from locforge_core.telemetry import WorkflowTelemetry
from locforge_schemas.base import BaseSchema
from locforge_schemas.events import ProgressEvent, StageEventSuffix
from locforge_schemas.primitives import Cursor, LogLevel, WorkflowId, WorkflowKind
from locforge_schemas.workflow import WorkflowStep


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return str(uuid4())


@dataclass(frozen=True, slots=True)
class StageOutcome[ContextT: BaseSchema]:
    """Result of processing one page of a stage."""

    next_cursor: Cursor | None
    is_done: bool
    context: ContextT
    items_processed: int = 0


type PageProcessor[ContextT: BaseSchema] = Callable[
    [ContextT, Cursor | None, int], Awaitable[StageOutcome[ContextT]]
]


@dataclass(frozen=True, slots=True)
class Stage[ContextT: BaseSchema]:
    """One named phase of a workflow with its page-processing function."""

    name: str
    page_size: int
    process_page: PageProcessor[ContextT]


class WorkflowDefinition[ContextT: BaseSchema](Protocol):
    """What a workflow family plugs into the driver."""

    kind: WorkflowKind
    context_type: type[BaseSchema]
    recovery_hint: str

    def stages(self, context: ContextT) -> list[Stage[ContextT]]:
        """Return the ordered stages; must be stable for one instance."""
        raise NotImplementedError

    async def is_stale(self, context: ContextT) -> bool:
        """Return True when the instance already reached a terminal state."""
        raise NotImplementedError

    async def on_stage_complete(
        self, stage: Stage[ContextT], context: ContextT
    ) -> ContextT:
        """Finish a stage once its last page was processed."""
        raise NotImplementedError

    async def on_complete(self, context: ContextT) -> None:
        """Finish the workflow after its last stage."""
        raise NotImplementedError

    async def on_failure(self, context: ContextT, error: Exception) -> None:
        """Compensate after a terminal error."""
        raise NotImplementedError


class WorkflowDriver[ContextT: BaseSchema]:
    """Drive one workflow family through the host scheduler.

    Every exception raised by a stage is terminal for the instance and is
    routed to the definition's `on_failure`, except `TransientError`, which
    propagates so the host's retry policy can re-deliver the same step. When
    the host gives up on a step it schedules a compensation step, which fails
    the instance the same way; a `TransientError` raised while compensating
    is retried like any other step.
    """

    def __init__(
        self,
        definition: WorkflowDefinition[ContextT],
        scheduler: SchedulerProtocol,
        *,
        telemetry: WorkflowTelemetry | None = None,
        step_delay_ms: int = 0,
    ) -> None:
        """Initialize the driver and register its step handler.

        Args:
            definition: Workflow family to drive.
            scheduler: Host scheduler.
            telemetry: Optional log/progress emitter.
            step_delay_ms: Delay between consecutive steps of one instance.
        """
        self._definition = definition
        self._scheduler = scheduler
        self._telemetry = telemetry or WorkflowTelemetry()
        self._step_delay_ms = step_delay_ms
        self._step_model: type[WorkflowStep[ContextT]] = WorkflowStep[
            definition.context_type
        ]
        self._kind = WorkflowKind(definition.kind)
        scheduler.register(
            self.step_name, self._handle, on_dead_letter=self._on_dead_letter
        )
        scheduler.register(self.compensation_step_name, self._handle_compensation)

    @property
    def kind(self) -> WorkflowKind:
        """Workflow family driven by this driver."""
        return self._kind

    @property
    def step_name(self) -> str:
        """Name under which steps are registered with the scheduler."""
        return f"{self._kind.value}.advance"

    @property
    def compensation_step_name(self) -> str:
        """Name of the step that fails an instance the host gave up on."""
        return f"{self._kind.value}.compensate"

    async def start(
        self, context: ContextT, *, workflow_id: WorkflowId | None = None
    ) -> WorkflowId:
        """Kick off a new workflow instance.

        Args:
            context: Initial workflow context.
            workflow_id: Optional explicit instance identifier.

        Returns:
            WorkflowId: Instance identifier.
        """
        workflow_id = workflow_id or new_id()
        stages = self._definition.stages(context)
        stage_names = [stage.name for stage in stages]
        await self._telemetry.emit_log(
            build_workflow_started_log(
                self._telemetry.now(), workflow_id, self._kind, stage_names
            )
        )
        await self._telemetry.emit_progress(
            workflow_id=workflow_id,
            kind=self._kind,
            event=ProgressEvent.WORKFLOW_STARTED,
            stages=stage_names,
        )
        if not stages:
            await self._complete(workflow_id, stage_names, context, steps=0)
            return workflow_id
        await self._schedule(
            self._step_model(
                workflow_id=workflow_id,
                kind=self._kind,
                stage_index=0,
                stage=stages[0].name,
                cursor=None,
                sequence=0,
                context=context,
            )
        )
        return workflow_id

    async def resume(
        self,
        context: ContextT,
        stage: str,
        *,
        workflow_id: WorkflowId | None = None,
    ) -> WorkflowId:
        """Re-enter a stalled workflow at the start of a stage.

        Args:
            context: Workflow context.
            stage: Stage name to restart from (cursor reset to null).
            workflow_id: Optional instance identifier to reuse.

        Returns:
            WorkflowId: Instance identifier.

        Raises:
            WorkflowError: If the stage is not part of the workflow.
        """
        stages = self._definition.stages(context)
        stage_names = [entry.name for entry in stages]
        if stage not in stage_names:
            raise workflow_error(
                WorkflowErrorCode.INVALID_STAGE,
                f"Unknown stage {stage!r} for {self._kind.value}",
                kind=self._kind,
                field="stage",
                provided=stage,
            )
        workflow_id = workflow_id or new_id()
        await self._telemetry.emit_log(
            build_workflow_resumed_log(
                self._telemetry.now(), workflow_id, self._kind, stage
            )
        )
        await self._schedule(
            self._step_model(
                workflow_id=workflow_id,
                kind=self._kind,
                stage_index=stage_names.index(stage),
                stage=stage,
                cursor=None,
                sequence=0,
                context=context,
            )
        )
        return workflow_id

    async def advance(self, step: WorkflowStep[ContextT]) -> None:
        """Execute one step: one bounded page of one stage.

        Args:
            step: Step arguments as delivered by the scheduler.

        Raises:
            TransientError: Propagated for the host to retry the step.
        """
        context = step.context
        if await self._definition.is_stale(context):
            await self._telemetry.emit_log(
                build_step_ignored_log(
                    self._telemetry.now(),
                    step.workflow_id,
                    self._kind,
                    step.stage,
                    "workflow already terminal",
                )
            )
            return

        stages = self._definition.stages(context)
        stage_names = [stage.name for stage in stages]
        if (
            step.stage_index >= len(stages)
            or stages[step.stage_index].name != step.stage
        ):
            await self._fail(
                step,
                stage_names,
                workflow_error(
                    WorkflowErrorCode.INVALID_STAGE,
                    f"Step names stage {step.stage!r} at index {step.stage_index}",
                    workflow_id=step.workflow_id,
                    kind=self._kind,
                    stage=step.stage,
                ),
            )
            return
        stage = stages[step.stage_index]

        if step.cursor is None:
            await self._emit_stage(step, stage_names, StageEventSuffix.STARTED)

        try:
            outcome = await stage.process_page(context, step.cursor, stage.page_size)
            if not outcome.is_done and outcome.next_cursor is None:
                raise workflow_error(
                    WorkflowErrorCode.INVALID_STATE,
                    f"Stage {stage.name} returned no cursor before finishing",
                    stage=stage.name,
                )
        except TransientError:
            raise
        except Exception as exc:
            await self._fail(step, stage_names, exc)
            return

        await self._emit_stage(
            step,
            stage_names,
            StageEventSuffix.PAGE_PROCESSED,
            items_processed=outcome.items_processed,
        )
        if not outcome.is_done:
            await self._schedule(
                self._next_step(step, step.stage_index, outcome.next_cursor, outcome)
            )
            return

        try:
            context = await self._definition.on_stage_complete(stage, outcome.context)
        except TransientError:
            raise
        except Exception as exc:
            await self._fail(step, stage_names, exc)
            return
        await self._emit_stage(step, stage_names, StageEventSuffix.COMPLETED)

        next_index = step.stage_index + 1
        if next_index < len(stages):
            await self._schedule(
                self._step_model(
                    workflow_id=step.workflow_id,
                    kind=self._kind,
                    stage_index=next_index,
                    stage=stages[next_index].name,
                    cursor=None,
                    sequence=step.sequence + 1,
                    context=context,
                )
            )
            return

        try:
            await self._complete(
                step.workflow_id, stage_names, context, steps=step.sequence + 1
            )
        except TransientError:
            raise
        except Exception as exc:
            await self._fail(step, stage_names, exc)

    async def _handle(self, args: str) -> None:
        await self.advance(self._step_model.model_validate_json(args))

    async def _on_dead_letter(self, args: str, error: Exception) -> None:
        try:
            step = self._step_model.model_validate_json(args)
        except ValidationError:
            # Unreadable arguments name no instance to compensate.
            return
        failure = str(error) or type(error).__name__
        await self._scheduler.schedule(
            self.compensation_step_name,
            0,
            step.model_copy(update={"failure": failure}).model_dump_json(),
        )

    async def _handle_compensation(self, args: str) -> None:
        step = self._step_model.model_validate_json(args)
        if await self._definition.is_stale(step.context):
            await self._telemetry.emit_log(
                build_step_ignored_log(
                    self._telemetry.now(),
                    step.workflow_id,
                    self._kind,
                    step.stage,
                    "workflow already terminal",
                )
            )
            return
        stage_names = [stage.name for stage in self._definition.stages(step.context)]
        await self._fail(
            step,
            stage_names,
            workflow_error(
                WorkflowErrorCode.RETRIES_EXHAUSTED,
                f"Step gave up after retries: {step.failure or 'unknown error'}",
                workflow_id=step.workflow_id,
                kind=self._kind,
                stage=step.stage,
            ),
        )

    def _next_step(
        self,
        step: WorkflowStep[ContextT],
        stage_index: int,
        cursor: Cursor | None,
        outcome: StageOutcome[ContextT],
    ) -> WorkflowStep[ContextT]:
        return self._step_model(
            workflow_id=step.workflow_id,
            kind=self._kind,
            stage_index=stage_index,
            stage=step.stage,
            cursor=cursor,
            sequence=step.sequence + 1,
            context=outcome.context,
        )

    async def _schedule(self, step: WorkflowStep[ContextT]) -> None:
        await self._scheduler.schedule(
            self.step_name, self._step_delay_ms, step.model_dump_json()
        )

    async def _complete(
        self,
        workflow_id: WorkflowId,
        stage_names: list[str],
        context: ContextT,
        *,
        steps: int,
    ) -> None:
        await self._definition.on_complete(context)
        await self._telemetry.emit_log(
            build_workflow_completed_log(
                self._telemetry.now(), workflow_id, self._kind, steps
            )
        )
        await self._telemetry.emit_progress(
            workflow_id=workflow_id,
            kind=self._kind,
            event=ProgressEvent.WORKFLOW_COMPLETED,
            stages=stage_names,
        )

    async def _fail(
        self,
        step: WorkflowStep[ContextT],
        stage_names: list[str],
        error: Exception,
    ) -> None:
        error_code, why, next_action = _build_error_payload(
            error, self._definition.recovery_hint
        )
        timestamp = self._telemetry.now()
        if step.stage_index < len(stage_names):
            await self._emit_stage(
                step,
                stage_names,
                StageEventSuffix.FAILED,
                level=LogLevel.ERROR,
                message=why,
            )
        await self._telemetry.emit_log(
            build_workflow_failed_log(
                timestamp,
                step.workflow_id,
                self._kind,
                step.stage,
                f"Workflow failed: {why}",
                error_code,
                why,
                next_action,
            )
        )
        await self._telemetry.emit_progress(
            workflow_id=step.workflow_id,
            kind=self._kind,
            event=ProgressEvent.WORKFLOW_FAILED,
            stages=stage_names,
            message=why,
        )
        await self._definition.on_failure(step.context, error)

    async def _emit_stage(
        self,
        step: WorkflowStep[ContextT],
        stage_names: list[str],
        suffix: StageEventSuffix,
        *,
        items_processed: int | None = None,
        level: LogLevel = LogLevel.INFO,
        message: str | None = None,
    ) -> None:
        await self._telemetry.emit_log(
            build_stage_log(
                self._telemetry.now(),
                step.workflow_id,
                self._kind,
                step.stage,
                step.stage_index,
                suffix,
                message or f"Stage {step.stage} {suffix.value.replace('_', ' ')}",
                items_processed=items_processed,
                cursor=step.cursor,
                level=level,
            )
        )
        progress_event = _STAGE_PROGRESS_EVENTS.get(suffix)
        if progress_event is None:
            return
        await self._telemetry.emit_progress(
            workflow_id=step.workflow_id,
            kind=self._kind,
            event=progress_event,
            stages=stage_names,
            stage_index=step.stage_index,
            items_processed=items_processed or 0,
        )


_STAGE_PROGRESS_EVENTS: dict[StageEventSuffix, ProgressEvent] = {
    StageEventSuffix.STARTED: ProgressEvent.STAGE_STARTED,
    StageEventSuffix.PAGE_PROCESSED: ProgressEvent.STAGE_PROGRESS,
    StageEventSuffix.COMPLETED: ProgressEvent.STAGE_COMPLETED,
}


def _build_error_payload(
    error: Exception, recovery_hint: str
) -> tuple[str, str, str]:
    if isinstance(error, WorkflowError):
        error_code = str(error.info.code)
        why = error.info.message
        if error.info.details and error.info.details.reason:
            why = f"{why} ({error.info.details.reason})"
    elif isinstance(error, StorageError):
        error_code = f"storage_{error.info.code}"
        why = error.info.message
    elif isinstance(error, CodecError):
        error_code = "codec_error"
        why = str(error)
    else:
        error_code = str(WorkflowErrorCode.STAGE_FAILED)
        why = str(error) or type(error).__name__
    return error_code, why, recovery_hint
