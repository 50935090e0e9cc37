from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from loguru import logger

from repodeck.runtime.db.engine import create_engine, create_session_factory
from repodeck.runtime.errors import (
    CommandFailedError,
    ConfigNotFoundError,
    DirectoryConflictError,
    DuplicateWorkspaceError,
    VerificationFailedError,
    WorkspaceError,
    WorkspaceNotFoundError,
    WorktreeConflictError,
)
from repodeck.runtime.git.executor import CommandExecutor
from repodeck.runtime.log import setup_logging
from repodeck.runtime.managers.workspaces import WorkspaceManager
from repodeck.runtime.profiles import DirectoryProfileSource
from repodeck.runtime.settings import RepodeckSettings, get_settings
from repodeck.runtime.store.base import WorkspaceStore
from repodeck.runtime.store.memory import MemoryWorkspaceStore
from repodeck.runtime.store.sql import SqlWorkspaceStore


def build_manager(settings: RepodeckSettings, store: WorkspaceStore) -> WorkspaceManager:
    """Wire the workspace manager from settings (shared by the app and the CLI)."""
    return WorkspaceManager.from_settings(
        settings,
        store,
        CommandExecutor(settings.git_binary),
        profiles=DirectoryProfileSource(settings.profiles_path),
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    logger.info("Repodeck starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Data root: {}{} (workspaces in {})", settings.data_root, prefix_info, settings.repos_path)
    if settings.resolve_git_token():
        logger.info("Git credentials: token configured for {}", settings.git_token_host)

    # -- Initialise state fields (always present, possibly None) ----------------
    _app.state.db_engine = None
    _app.state.workspace_manager = None

    # -- Record store ----------------------------------------------------------
    store: WorkspaceStore
    if settings.database_url:
        engine = create_engine(settings.database_url)
        _app.state.db_engine = engine
        store = SqlWorkspaceStore(create_session_factory(engine))
        logger.info("PostgreSQL: connected (pool_size=3, max_overflow=5)")
    else:
        store = MemoryWorkspaceStore()
        logger.warning("REPODECK_DATABASE_URL not set -- workspace records are kept in memory only")

    # -- Workspace manager -----------------------------------------------------
    manager = build_manager(settings, store)
    _app.state.workspace_manager = manager
    logger.info("WorkspaceManager: initialised")

    # Startup reconciliation: remove directories no record references.  An
    # in-memory store starts empty, so reconciling would wipe every working
    # copy left by a previous run.
    if settings.reconcile_on_startup and settings.database_url:
        removed = await manager.reconcile()
        if removed:
            logger.info("Startup reconciliation: removed {} orphaned directories", len(removed))
    elif settings.reconcile_on_startup:
        logger.warning("Startup reconciliation skipped: no database configured")

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Repodeck shutting down")

    # Dispose DB engine (closes all pooled connections).
    if _app.state.db_engine is not None:
        await _app.state.db_engine.dispose()
        logger.info("PostgreSQL: disposed")


app = FastAPI(title="Repodeck Workspace Runtime", lifespan=lifespan)

# ---------------------------------------------------------------------------
# Domain error -> HTTP translation
# ---------------------------------------------------------------------------
_STATUS_BY_ERROR: list[tuple[type[WorkspaceError], int]] = [
    (WorkspaceNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConfigNotFoundError, status.HTTP_404_NOT_FOUND),
    (DirectoryConflictError, status.HTTP_409_CONFLICT),
    (WorktreeConflictError, status.HTTP_409_CONFLICT),
    (DuplicateWorkspaceError, status.HTTP_409_CONFLICT),
    (CommandFailedError, status.HTTP_502_BAD_GATEWAY),
    (VerificationFailedError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


@app.exception_handler(WorkspaceError)
async def workspace_error_handler(_request: Request, exc: WorkspaceError) -> JSONResponse:
    code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("{}: {}", type(exc).__name__, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from repodeck.runtime.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(workspaces_router)

app.include_router(api)

