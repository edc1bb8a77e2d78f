"""Common pytest configuration."""

import pytest

from locforge_core.telemetry import WorkflowTelemetry
from locforge_io.blobs import InMemoryBlobStore
from locforge_io.scheduling import InMemoryScheduler
from locforge_io.storage import InMemoryLogSink, InMemoryProgressSink
from locforge_io.tables import InMemoryTableStore
from tests.helpers.builders import FIXED_TIMESTAMP


@pytest.fixture
def anyio_backend() -> str:
    """Force asyncio backend for anyio-powered tests.

    Returns:
        str: The backend name.
    """
    return "asyncio"


@pytest.fixture
def log_sink() -> InMemoryLogSink:
    """Log sink collecting every entry emitted during a test.

    Returns:
        InMemoryLogSink: Empty sink.
    """
    return InMemoryLogSink()


@pytest.fixture
def progress_sink() -> InMemoryProgressSink:
    """Progress sink collecting every update emitted during a test.

    Returns:
        InMemoryProgressSink: Empty sink.
    """
    return InMemoryProgressSink()


@pytest.fixture
def telemetry(
    log_sink: InMemoryLogSink, progress_sink: InMemoryProgressSink
) -> WorkflowTelemetry:
    """Telemetry wired to the in-memory sinks with a frozen clock.

    Returns:
        WorkflowTelemetry: Emitter shared by the engine under test.
    """
    return WorkflowTelemetry(
        log_sink=log_sink,
        progress_sink=progress_sink,
        clock=lambda: FIXED_TIMESTAMP,
    )


@pytest.fixture
def tables() -> InMemoryTableStore:
    """Fresh in-memory table store.

    Returns:
        InMemoryTableStore: Store with every table empty.
    """
    return InMemoryTableStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    """Fresh in-memory blob store.

    Returns:
        InMemoryBlobStore: Store with no blobs.
    """
    return InMemoryBlobStore()


@pytest.fixture
def scheduler(telemetry: WorkflowTelemetry) -> InMemoryScheduler:
    """Deterministic scheduler sharing the test telemetry.

    Returns:
        InMemoryScheduler: Scheduler with the default retry policy.
    """
    return InMemoryScheduler(telemetry=telemetry)
