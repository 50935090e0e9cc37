"""Shared test fixtures: testcontainers for PostgreSQL, local git remotes.

Integration tests use a real PostgreSQL container managed by
testcontainers-python.  The container is session-scoped (started once per
test run).  Each test function gets an isolated DB session and session
factory (via savepoint rollback).

Requires Docker to be available.  Tests needing containers should be
marked with ``@pytest.mark.integration``.

Unit tests that drive real ``git`` use bare repositories created under
``tmp_path`` as the remote; they are skipped when ``git`` is not installed.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from testcontainers.postgres import PostgresContainer

from repodeck.runtime.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Session-scoped: container (started once, shared across all tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL 17 container for the test session."""
    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="repodeck_test",
        driver="psycopg",
    ) as pg:
        yield pg


# ---------------------------------------------------------------------------
# Session-scoped: connection URL and schema migration
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_url(pg_container: PostgresContainer) -> str:
    """PostgreSQL URL (psycopg3 dialect) with Alembic migrations applied."""
    url = pg_container.get_connection_url()
    _set_env("REPODECK_DATABASE_URL", url)

    # Apply all migrations using the packaged alembic.ini (same config as CLI).
    from alembic import command
    from alembic.config import Config

    ini_path = Path(__file__).parent.parent / "repodeck" / "runtime" / "alembic.ini"
    cfg = Config(str(ini_path))
    command.upgrade(cfg, "head")

    return url


# ---------------------------------------------------------------------------
# Session-scoped: async engine (shared across all tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def async_engine(pg_url: str) -> Iterator[AsyncEngine]:
    """Session-scoped async SQLAlchemy engine."""
    engine = create_async_engine(pg_url)
    yield engine
    engine.sync_engine.dispose()


# ---------------------------------------------------------------------------
# Function-scoped: DB session / factory with savepoint rollback
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLAlchemy session; all changes rolled back after the test.

    Uses ``join_transaction_mode="create_savepoint"`` so that session.commit()
    inside tested code only commits a savepoint, while the outer transaction
    is rolled back at teardown -- giving each test a clean database state.
    """
    async with async_engine.connect() as conn:
        await conn.begin()
        session = AsyncSession(bind=conn, join_transaction_mode="create_savepoint")
        yield session
        await session.close()
        await conn.rollback()


@pytest.fixture
async def db_session_factory(async_engine: AsyncEngine) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session factory whose sessions all join one rolled-back outer transaction.

    The SQL store opens a fresh session per call; binding the factory to a
    single connection keeps every call inside the test's transaction.
    """
    async with async_engine.connect() as conn:
        await conn.begin()
        yield async_sessionmaker(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")
        await conn.rollback()


# ---------------------------------------------------------------------------
# Function-scoped: local git remotes
# ---------------------------------------------------------------------------

_GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "Repodeck Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Repodeck Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


def run_git(*args: str, cwd: Path | None = None) -> str:
    """Synchronous git helper for arranging test repositories."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=_GIT_ENV,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


@dataclass
class Remote:
    """A bare repository acting as ``origin`` plus the seed clone that feeds it."""

    url: str
    bare: Path
    seed: Path

    def commit_and_push(self, filename: str, content: str, branch: str = "main") -> None:
        run_git("checkout", branch, cwd=self.seed)
        (self.seed / filename).write_text(content)
        run_git("add", filename, cwd=self.seed)
        run_git("commit", "-m", f"update {filename}", cwd=self.seed)
        run_git("push", str(self.bare), branch, cwd=self.seed)


def make_remote(root: Path, name: str = "widget", branches: tuple[str, ...] = ("feature",)) -> Remote:
    """Create ``{root}/{name}.git`` with ``main`` plus *branches*, each holding a README."""
    seed = root / f"{name}-seed"
    bare = root / f"{name}.git"
    run_git("init", "--initial-branch=main", str(seed))
    (seed / "README.md").write_text(f"{name}\n")
    run_git("add", "README.md", cwd=seed)
    run_git("commit", "-m", "initial", cwd=seed)
    for branch in branches:
        run_git("branch", branch, cwd=seed)
    run_git("init", "--bare", "--initial-branch=main", str(bare))
    run_git("push", str(bare), "main", *branches, cwd=seed)
    return Remote(url=str(bare), bare=bare, seed=seed)


@pytest.fixture
def remote_factory(tmp_path: Path) -> Callable[..., Remote]:
    """Build additional remotes, e.g. a second repository with the same short name."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    def _make(subdir: str = "remotes", name: str = "widget", branches: tuple[str, ...] = ("feature",)) -> Remote:
        return make_remote(tmp_path / subdir, name, branches)

    return _make


@pytest.fixture
def remote(remote_factory: Callable[..., Remote]) -> Remote:
    """Bare ``widget.git`` remote with ``main`` and ``feature`` branches."""
    return remote_factory()
