"""In-memory workspace store.

Used when no database is configured (records are lost on restart, and the
startup reconciliation then removes their directories) and as the store in
unit tests.  Enforces the same uniqueness rules as the PostgreSQL table.
"""

from __future__ import annotations

import itertools
from datetime import datetime
from typing import Any

from repodeck.runtime.errors import DuplicateWorkspaceError, WorkspaceNotFoundError
from repodeck.runtime.models.enums import CloneStatus
from repodeck.runtime.models.workspace import WorkspaceFields, WorkspaceRecord


class MemoryWorkspaceStore:
    """Process-local implementation of the ``WorkspaceStore`` protocol."""

    def __init__(self) -> None:
        self._rows: dict[int, WorkspaceRecord] = {}
        self._ids = itertools.count(1)

    async def insert(self, fields: WorkspaceFields) -> WorkspaceRecord:
        for row in self._rows.values():
            same_pair = row.repository_url == fields.repository_url and row.branch == (fields.branch or None)
            if same_pair or row.local_path == fields.local_path:
                msg = f"Workspace already exists for {fields.repository_url}#{fields.branch} ({fields.local_path})"
                raise DuplicateWorkspaceError(msg)
        record = WorkspaceRecord(id=next(self._ids), **fields.model_dump())
        self._rows[record.id] = record
        return record

    async def get_by_id(self, workspace_id: int) -> WorkspaceRecord | None:
        return self._rows.get(workspace_id)

    async def get_by_url_and_branch(self, repository_url: str, branch: str | None) -> WorkspaceRecord | None:
        branch = branch or None
        for row in self._rows.values():
            if row.repository_url == repository_url and row.branch == branch:
                return row
        return None

    async def get_by_local_path(self, local_path: str) -> WorkspaceRecord | None:
        for row in self._rows.values():
            if row.local_path == local_path:
                return row
        return None

    async def list_all(self) -> list[WorkspaceRecord]:
        return sorted(self._rows.values(), key=lambda r: (r.cloned_at, r.id), reverse=True)

    async def update_status(self, workspace_id: int, status: CloneStatus) -> WorkspaceRecord:
        return self._update(workspace_id, clone_status=status)

    async def update_last_pulled(self, workspace_id: int, when: datetime) -> WorkspaceRecord:
        return self._update(workspace_id, last_pulled=when)

    async def update_config_name(self, workspace_id: int, config_name: str | None) -> WorkspaceRecord:
        return self._update(workspace_id, config_name=config_name)

    async def delete(self, workspace_id: int) -> None:
        self._rows.pop(workspace_id, None)

    def _update(self, workspace_id: int, **changes: Any) -> WorkspaceRecord:
        row = self._rows.get(workspace_id)
        if row is None:
            raise WorkspaceNotFoundError(workspace_id)
        updated = row.model_copy(update=changes)
        self._rows[workspace_id] = updated
        return updated
