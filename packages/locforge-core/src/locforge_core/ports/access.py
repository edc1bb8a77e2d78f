"""Authorization port checked once before a workflow is kicked off."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from locforge_core.ports.workflow import WorkflowErrorCode, workflow_error
from locforge_schemas.primitives import EntityKind, WorkspaceId


@runtime_checkable
class AccessPolicyProtocol(Protocol):
    """Protocol for the caller's workspace authorization check."""

    async def ensure_workspace_access(self, workspace_id: WorkspaceId) -> None:
        """Raise a WorkflowError with code access_denied when not allowed."""
        raise NotImplementedError


class AllowAllAccessPolicy:
    """Access policy for trusted callers such as the local CLI."""

    async def ensure_workspace_access(self, workspace_id: WorkspaceId) -> None:
        """Allow every workspace."""
        return None


class StaticAccessPolicy:
    """Access policy backed by a fixed set of allowed workspaces."""

    def __init__(self, allowed_workspaces: set[WorkspaceId]) -> None:
        """Initialize the policy.

        Args:
            allowed_workspaces: Workspaces the caller may act on.
        """
        self._allowed = set(allowed_workspaces)

    async def ensure_workspace_access(self, workspace_id: WorkspaceId) -> None:
        """Reject workspaces outside the allowed set.

        Raises:
            WorkflowError: If the workspace is not allowed.
        """
        if workspace_id not in self._allowed:
            raise workflow_error(
                WorkflowErrorCode.ACCESS_DENIED,
                "Access to workspace denied",
                entity_kind=EntityKind.WORKSPACE,
                entity_id=workspace_id,
            )
