"""Workspace endpoints (RPC-style).

All write operations use POST; reads use GET.  Domain errors raised by the
manager are translated to HTTP status codes by the handlers in ``app.py``.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from loguru import logger

from repodeck.runtime.deps import Manager
from repodeck.runtime.errors import ConfigNotFoundError
from repodeck.runtime.managers.workspaces import WorkspaceManager
from repodeck.runtime.models.api import (
    BranchSwitch,
    ConfigSwitch,
    ReconcileResponse,
    WorkspaceCreate,
    WorkspaceResponse,
)
from repodeck.runtime.models.workspace import BranchListing, WorkspaceRecord

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


async def _to_response(manager: WorkspaceManager, record: WorkspaceRecord) -> WorkspaceResponse:
    return WorkspaceResponse(
        **record.model_dump(),
        full_path=str(manager.full_path(record)),
        current_branch=await manager.current_branch(record),
    )


@router.post("/create", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
async def create_workspace(body: WorkspaceCreate, manager: Manager) -> WorkspaceResponse:
    """Provision a working copy (idempotent per repository URL and branch)."""
    record = await manager.provision(body.repository_url, body.branch, use_worktree=body.use_worktree)
    if body.config_name:
        try:
            record = await manager.assign_config(record.id, body.config_name)
        except ConfigNotFoundError:
            logger.warning("Config '{}' not found; workspace {} created without it", body.config_name, record.id)
    return await _to_response(manager, record)


@router.get("/list", response_model=list[WorkspaceResponse])
async def list_workspaces(manager: Manager) -> list[WorkspaceResponse]:
    """List all workspaces, newest first."""
    return [await _to_response(manager, record) for record in await manager.list()]


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_workspaces(manager: Manager) -> ReconcileResponse:
    """Remove directories under the workspaces root that no record references."""
    return ReconcileResponse(removed=await manager.reconcile())


@router.get("/{workspace_id}/get", response_model=WorkspaceResponse)
async def get_workspace(workspace_id: int, manager: Manager) -> WorkspaceResponse:
    return await _to_response(manager, await manager.get(workspace_id))


@router.post("/{workspace_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(workspace_id: int, manager: Manager) -> None:
    """Delete the working copy from disk, then its record."""
    await manager.deprovision(workspace_id)


@router.post("/{workspace_id}/pull", response_model=WorkspaceResponse)
async def pull_workspace(workspace_id: int, manager: Manager) -> WorkspaceResponse:
    return await _to_response(manager, await manager.pull(workspace_id))


@router.get("/{workspace_id}/branches", response_model=BranchListing)
async def list_branches(workspace_id: int, manager: Manager) -> BranchListing:
    """Fetch, then list local and remote branch names."""
    return await manager.list_branches(workspace_id)


@router.post("/{workspace_id}/branch/switch", response_model=WorkspaceResponse)
async def switch_branch(workspace_id: int, body: BranchSwitch, manager: Manager) -> WorkspaceResponse:
    return await _to_response(manager, await manager.switch_branch(workspace_id, body.branch))


@router.post("/{workspace_id}/config/switch", response_model=WorkspaceResponse)
async def switch_config(workspace_id: int, body: ConfigSwitch, manager: Manager) -> WorkspaceResponse:
    """Materialize a configuration profile into the working copy."""
    return await _to_response(manager, await manager.assign_config(workspace_id, body.config_name))
