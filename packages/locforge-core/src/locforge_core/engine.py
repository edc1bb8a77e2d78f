"""Wire workflow definitions, drivers and services over a set of adapters."""

from __future__ import annotations

from dataclasses import dataclass

from locforge_core.builds import BuildGenerationWorkflow, BuildService
from locforge_core.deletion import CascadingDeletionWorkflow, DeletionService
from locforge_core.ports.access import AccessPolicyProtocol, AllowAllAccessPolicy
from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.scheduler import SchedulerProtocol
from locforge_core.ports.tables import TableStoreProtocol
from locforge_core.telemetry import WorkflowTelemetry
from locforge_core.workflow import WorkflowDriver
from locforge_schemas.config import EngineConfig
from locforge_schemas.primitives import EntityKind, WorkflowId
from locforge_schemas.workflow import BuildContext, DeletionContext


@dataclass(slots=True)
class Engine:
    """Services and drivers sharing one table store, blob store and scheduler."""

    builds: BuildService
    deletions: DeletionService
    build_driver: WorkflowDriver[BuildContext]
    deletion_drivers: dict[EntityKind, WorkflowDriver[DeletionContext]]


def build_engine(
    tables: TableStoreProtocol,
    blobs: BlobStoreProtocol,
    scheduler: SchedulerProtocol,
    *,
    config: EngineConfig | None = None,
    telemetry: WorkflowTelemetry | None = None,
    access: AccessPolicyProtocol | None = None,
) -> Engine:
    """Build the engine and register every workflow with the scheduler.

    Args:
        tables: Table store.
        blobs: Blob store.
        scheduler: Host scheduler.
        config: Engine configuration.
        telemetry: Optional log/progress emitter.
        access: Authorization check; defaults to allowing every workspace.

    Returns:
        Engine: Wired services and drivers.
    """
    config = config or EngineConfig()
    telemetry = telemetry or WorkflowTelemetry()
    access = access or AllowAllAccessPolicy()
    step_delay_ms = config.scheduler.step_delay_ms

    build_driver = WorkflowDriver(
        BuildGenerationWorkflow(
            tables,
            blobs,
            telemetry=telemetry,
            config=config.build,
            page_size=config.page_sizes.build_rows,
        ),
        scheduler,
        telemetry=telemetry,
        step_delay_ms=step_delay_ms,
    )

    deletion_drivers: dict[EntityKind, WorkflowDriver[DeletionContext]] = {}

    async def start_project_deletion(
        context: DeletionContext, workflow_id: WorkflowId
    ) -> None:
        await deletion_drivers[EntityKind.PROJECT].start(
            context, workflow_id=workflow_id
        )

    for entity_kind in EntityKind:
        deletion_drivers[entity_kind] = WorkflowDriver(
            CascadingDeletionWorkflow(
                entity_kind,
                tables,
                blobs,
                telemetry=telemetry,
                page_sizes=config.page_sizes,
                build_config=config.build,
                start_child=start_project_deletion
                if entity_kind == EntityKind.WORKSPACE
                else None,
            ),
            scheduler,
            telemetry=telemetry,
            step_delay_ms=step_delay_ms,
        )

    return Engine(
        builds=BuildService(
            tables,
            blobs,
            build_driver,
            access=access,
            telemetry=telemetry,
            config=config.build,
        ),
        deletions=DeletionService(
            tables, deletion_drivers, access=access, telemetry=telemetry
        ),
        build_driver=build_driver,
        deletion_drivers=deletion_drivers,
    )
