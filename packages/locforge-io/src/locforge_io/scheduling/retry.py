"""Retry policy shared by scheduler adapters."""

from __future__ import annotations

from dataclasses import dataclass

import orjson

from locforge_core.ports.workflow import build_step_retry_log
from locforge_core.telemetry import WorkflowTelemetry
from locforge_schemas.config import RetryConfig
from locforge_schemas.primitives import WorkflowId

UNKNOWN_WORKFLOW_ID = "unknown"


@dataclass(frozen=True, slots=True)
class DeadLetter:
    """Step that exhausted its retries or failed outside the retry policy."""

    step_name: str
    args: str
    attempts: int
    error_message: str


def backoff_delay_ms(retry: RetryConfig, attempt: int) -> int:
    """Return the backoff before re-delivering a step that failed `attempt` times.

    The delay starts at `backoff_s` and doubles per attempt up to
    `max_backoff_s`.
    """
    delay_s = min(retry.backoff_s * (2 ** max(attempt - 1, 0)), retry.max_backoff_s)
    return int(delay_s * 1000)


def workflow_id_from_args(args: str) -> WorkflowId:
    """Extract the workflow id carried by serialized step arguments."""
    try:
        payload = orjson.loads(args)
    except orjson.JSONDecodeError:
        return UNKNOWN_WORKFLOW_ID
    if isinstance(payload, dict):
        workflow_id = payload.get("workflow_id")
        if isinstance(workflow_id, str) and workflow_id:
            return workflow_id
    return UNKNOWN_WORKFLOW_ID


async def emit_retry_decision(
    telemetry: WorkflowTelemetry,
    step_name: str,
    args: str,
    attempt: int,
    error: Exception,
    delay_ms: int | None,
) -> None:
    """Log a retry (with its delay) or a dead-letter decision (delay None)."""
    await telemetry.emit_log(
        build_step_retry_log(
            telemetry.now(),
            workflow_id_from_args(args),
            step_name,
            attempt,
            str(error) or type(error).__name__,
            delay_ms,
        )
    )
