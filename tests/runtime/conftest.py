"""Shared fixtures for workspace runtime tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from repodeck.runtime.app import app
from repodeck.runtime.git.executor import CommandExecutor
from repodeck.runtime.managers.workspaces import WorkspaceManager
from repodeck.runtime.profiles import DirectoryProfileSource
from repodeck.runtime.store.memory import MemoryWorkspaceStore


@pytest.fixture
def repos_root(tmp_path: Path) -> Path:
    return tmp_path / "repos"


@pytest.fixture
def profiles_root(tmp_path: Path) -> Path:
    root = tmp_path / "profiles"
    root.mkdir()
    return root


@pytest.fixture
def store() -> MemoryWorkspaceStore:
    return MemoryWorkspaceStore()


@pytest.fixture
def manager(store: MemoryWorkspaceStore, repos_root: Path, profiles_root: Path) -> WorkspaceManager:
    """Manager driving real git against ``repos_root`` with an in-memory store."""
    return WorkspaceManager(
        store,
        CommandExecutor(),
        repos_root,
        profiles=DirectoryProfileSource(profiles_root),
    )


@pytest.fixture
async def client(manager: WorkspaceManager) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with the test manager.

    The app lifespan does NOT run under ``ASGITransport``, so state fields
    are pre-set here.
    """
    app.state.db_engine = None
    app.state.workspace_manager = manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.workspace_manager = None
