"""FastAPI dependency injection for the workspace manager.

Usage in route handlers::

    @router.get("/list")
    async def list_workspaces(manager: Manager) -> list[WorkspaceResponse]:
        ...

The dependency raises HTTP 503 if the lifespan did not install a manager
(startup failed or the app is mounted without its lifespan).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from repodeck.runtime.managers.workspaces import WorkspaceManager


def get_manager(request: Request) -> WorkspaceManager:
    """Return the process-wide ``WorkspaceManager`` from app state."""
    manager: WorkspaceManager | None = getattr(request.app.state, "workspace_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workspace manager not initialised.",
        )
    return manager


# -- Annotated type aliases for concise route signatures ---------------------

Manager = Annotated[WorkspaceManager, Depends(get_manager)]
"""Annotated dependency: the shared workspace manager."""
