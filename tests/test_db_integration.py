"""Integration smoke tests for the database fixtures.

Verifies the testcontainers + Alembic migration + savepoint rollback
pipeline works end-to-end.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from repodeck.runtime.db.tables import Workspace

pytestmark = pytest.mark.integration


async def test_alembic_migrations_applied(db_session: AsyncSession):
    """The workspaces table from the initial migration should exist."""
    result = await db_session.execute(
        text("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name")
    )
    tables = sorted(row[0] for row in result)
    assert "workspaces" in tables
    assert "alembic_version" in tables


async def test_server_defaults(db_session: AsyncSession):
    ws = Workspace(repository_url="https://github.com/acme/widget.git", local_path="widget")
    db_session.add(ws)
    await db_session.commit()
    await db_session.refresh(ws)

    assert ws.default_branch == "main"
    assert ws.clone_status == "cloning"
    assert ws.is_worktree is False
    assert ws.cloned_at is not None


async def test_null_branch_is_unique_per_url(db_session: AsyncSession):
    """Two rows for the same URL without a branch violate the constraint."""
    url = "https://github.com/acme/widget.git"
    db_session.add(Workspace(repository_url=url, local_path="widget", cloned_at=datetime.now(UTC)))
    await db_session.commit()

    db_session.add(Workspace(repository_url=url, local_path="widget-2", cloned_at=datetime.now(UTC)))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_savepoint_rollback_isolation(db_session: AsyncSession):
    """Rows inserted in a test should not persist to the next test."""
    db_session.add(Workspace(repository_url="https://example.com/isolated.git", local_path="isolated"))
    await db_session.commit()  # commits savepoint, not the real txn

    result = await db_session.execute(select(Workspace).where(Workspace.local_path == "isolated"))
    assert result.scalar_one().repository_url == "https://example.com/isolated.git"


async def test_savepoint_rollback_clean_state(db_session: AsyncSession):
    """Previous test's data should have been rolled back."""
    result = await db_session.execute(select(Workspace).where(Workspace.local_path == "isolated"))
    row = result.scalar_one_or_none()
    assert row is None, "Savepoint rollback did not clean up previous test's data"
