"""Emit structured workflow telemetry to log and progress sinks."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from locforge_core.ports.workflow import LogSinkProtocol, ProgressSinkProtocol
from locforge_schemas.events import ProgressEvent
from locforge_schemas.logs import LogEntry
from locforge_schemas.primitives import Timestamp, WorkflowId, WorkflowKind
from locforge_schemas.progress import WorkflowProgressUpdate


def now_timestamp() -> Timestamp:
    """Return the current UTC time as an ISO-8601 timestamp."""
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")


class WorkflowTelemetry:
    """Shared log/progress emitter for the driver and its pipelines."""

    def __init__(
        self,
        *,
        log_sink: LogSinkProtocol | None = None,
        progress_sink: ProgressSinkProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the telemetry emitter.

        Args:
            log_sink: Optional log sink.
            progress_sink: Optional progress sink.
            clock: Optional timestamp provider.
        """
        self._log_sink = log_sink
        self._progress_sink = progress_sink
        self._clock = clock or now_timestamp

    def now(self) -> Timestamp:
        """Return the current timestamp from the configured clock."""
        return self._clock()

    async def emit_log(self, entry: LogEntry) -> None:
        """Forward a log entry to the log sink, if any."""
        if self._log_sink is None:
            return
        await self._log_sink.emit_log(entry)

    async def emit_progress(
        self,
        *,
        workflow_id: WorkflowId,
        kind: WorkflowKind,
        event: ProgressEvent,
        stages: list[str],
        stage_index: int | None = None,
        items_processed: int = 0,
        message: str | None = None,
    ) -> None:
        """Emit a progress update derived from the stage position.

        Stages before `stage_index` count as completed; a completed stage or
        workflow event also counts the current one.
        """
        if self._progress_sink is None:
            return
        completed_until = stage_index or 0
        if event in {ProgressEvent.STAGE_COMPLETED, ProgressEvent.WORKFLOW_COMPLETED}:
            completed_until = (
                len(stages) if stage_index is None else stage_index + 1
            )
        update = WorkflowProgressUpdate(
            workflow_id=workflow_id,
            kind=kind,
            event=event,
            timestamp=self._clock(),
            stage=stages[stage_index] if stage_index is not None else None,
            stage_index=stage_index,
            stage_count=len(stages),
            items_processed=items_processed,
            completed_stages=list(stages[:completed_until]),
            message=message,
        )
        await self._progress_sink.emit_progress(update)
