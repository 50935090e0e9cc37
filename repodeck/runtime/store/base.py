"""Workspace record store interface.

The store is a plain persisted table of workspace rows with point lookups
and field-level updates.  It holds no business logic: every decision about
what to create, reuse or delete lives in the workspace manager.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from repodeck.runtime.models.enums import CloneStatus
from repodeck.runtime.models.workspace import WorkspaceFields, WorkspaceRecord


@runtime_checkable
class WorkspaceStore(Protocol):
    """Async protocol for workspace rows.

    Uniqueness: at most one row per ``(repository_url, branch)`` (a missing
    branch is its own bucket) and per ``local_path``.
    """

    async def insert(self, fields: WorkspaceFields) -> WorkspaceRecord:
        """Insert a row.  Raises ``DuplicateWorkspaceError`` on a uniqueness violation."""
        ...

    async def get_by_id(self, workspace_id: int) -> WorkspaceRecord | None: ...

    async def get_by_url_and_branch(self, repository_url: str, branch: str | None) -> WorkspaceRecord | None: ...

    async def get_by_local_path(self, local_path: str) -> WorkspaceRecord | None: ...

    async def list_all(self) -> list[WorkspaceRecord]:
        """All rows, newest first."""
        ...

    async def update_status(self, workspace_id: int, status: CloneStatus) -> WorkspaceRecord:
        """Raises ``WorkspaceNotFoundError`` if the row is gone."""
        ...

    async def update_last_pulled(self, workspace_id: int, when: datetime) -> WorkspaceRecord: ...

    async def update_config_name(self, workspace_id: int, config_name: str | None) -> WorkspaceRecord: ...

    async def delete(self, workspace_id: int) -> None:
        """Delete a row.  No-op if not found."""
        ...
