"""PostgreSQL workspace store.

Each call opens its own short-lived ``AsyncSession`` and commits before
returning, so a provision that fails half-way can still run its
compensating delete after earlier steps were committed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repodeck.runtime.db.tables import Workspace
from repodeck.runtime.errors import DuplicateWorkspaceError, WorkspaceNotFoundError
from repodeck.runtime.models.enums import CloneStatus
from repodeck.runtime.models.workspace import WorkspaceFields, WorkspaceRecord


class SqlWorkspaceStore:
    """SQLAlchemy implementation of the ``WorkspaceStore`` protocol."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- Write -----------------------------------------------------------------

    async def insert(self, fields: WorkspaceFields) -> WorkspaceRecord:
        row = Workspace(**fields.model_dump())
        async with self._session_factory() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                msg = f"Workspace already exists for {fields.repository_url}#{fields.branch} ({fields.local_path})"
                raise DuplicateWorkspaceError(msg) from exc
            await db.refresh(row)
            return WorkspaceRecord.model_validate(row)

    async def update_status(self, workspace_id: int, status: CloneStatus) -> WorkspaceRecord:
        return await self._update(workspace_id, clone_status=status)

    async def update_last_pulled(self, workspace_id: int, when: datetime) -> WorkspaceRecord:
        return await self._update(workspace_id, last_pulled=when)

    async def update_config_name(self, workspace_id: int, config_name: str | None) -> WorkspaceRecord:
        return await self._update(workspace_id, config_name=config_name)

    async def delete(self, workspace_id: int) -> None:
        async with self._session_factory() as db:
            row = await db.get(Workspace, workspace_id)
            if row is None:
                return
            await db.delete(row)
            await db.commit()

    async def _update(self, workspace_id: int, **changes: Any) -> WorkspaceRecord:
        async with self._session_factory() as db:
            row = await db.get(Workspace, workspace_id)
            if row is None:
                raise WorkspaceNotFoundError(workspace_id)
            for key, value in changes.items():
                setattr(row, key, value)
            await db.commit()
            await db.refresh(row)
            return WorkspaceRecord.model_validate(row)

    # -- Read ------------------------------------------------------------------

    async def get_by_id(self, workspace_id: int) -> WorkspaceRecord | None:
        async with self._session_factory() as db:
            row = await db.get(Workspace, workspace_id)
            return WorkspaceRecord.model_validate(row) if row is not None else None

    async def get_by_url_and_branch(self, repository_url: str, branch: str | None) -> WorkspaceRecord | None:
        stmt = select(Workspace).where(Workspace.repository_url == repository_url)
        if branch:
            stmt = stmt.where(Workspace.branch == branch)
        else:
            stmt = stmt.where(Workspace.branch.is_(None))
        return await self._one(stmt)

    async def get_by_local_path(self, local_path: str) -> WorkspaceRecord | None:
        return await self._one(select(Workspace).where(Workspace.local_path == local_path))

    async def list_all(self) -> list[WorkspaceRecord]:
        stmt = select(Workspace).order_by(Workspace.cloned_at.desc(), Workspace.id.desc())
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [WorkspaceRecord.model_validate(row) for row in result.scalars().all()]

    async def _one(self, stmt: Any) -> WorkspaceRecord | None:
        async with self._session_factory() as db:
            result = await db.execute(stmt.limit(1))
            row = result.scalar_one_or_none()
            return WorkspaceRecord.model_validate(row) if row is not None else None
