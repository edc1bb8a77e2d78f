"""locforge-core: resumable workflow engine for localization data."""

from locforge_core.builds import BuildGenerationWorkflow, BuildService
from locforge_core.codec import (
    CodecError,
    ContainerKind,
    flatten,
    flatten_with_hints,
    parse_path,
    unflatten,
)
from locforge_core.deletion import (
    DELETION_STAGES,
    CascadingDeletionWorkflow,
    DeletionService,
    DeletionStage,
)
from locforge_core.engine import Engine, build_engine
from locforge_core.serving import ServeResult, ServeStatus, resolve_translation_file
from locforge_core.telemetry import WorkflowTelemetry
from locforge_core.version import VERSION
from locforge_core.workflow import (
    Stage,
    StageOutcome,
    WorkflowDefinition,
    WorkflowDriver,
)

__version__ = VERSION

__all__ = [
    "DELETION_STAGES",
    "VERSION",
    "BuildGenerationWorkflow",
    "BuildService",
    "CascadingDeletionWorkflow",
    "CodecError",
    "ContainerKind",
    "DeletionService",
    "DeletionStage",
    "Engine",
    "ServeResult",
    "ServeStatus",
    "Stage",
    "StageOutcome",
    "WorkflowDefinition",
    "WorkflowDriver",
    "WorkflowTelemetry",
    "build_engine",
    "flatten",
    "flatten_with_hints",
    "parse_path",
    "resolve_translation_file",
    "unflatten",
]
