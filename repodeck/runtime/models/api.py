"""API request / response schemas for workspace endpoints.

These thin schemas sit between HTTP and the workspace manager:

- **Request** schemas validate user input and provide defaults.
- **Response** schemas add live, non-persisted values (resolved path,
  current branch) to a ``WorkspaceRecord``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from repodeck.runtime.models.workspace import WorkspaceRecord


class WorkspaceCreate(BaseModel):
    """Input for provisioning a working copy."""

    repository_url: str = Field(min_length=1)
    branch: str | None = Field(default=None, description="Pinned branch; omitted means the default branch.")
    use_worktree: bool = Field(default=False, description="Prefer a worktree of the base clone over a new clone.")
    config_name: str | None = Field(
        default=None,
        description="Configuration profile to materialize after provisioning.",
    )


class BranchSwitch(BaseModel):
    branch: str = Field(min_length=1)


class ConfigSwitch(BaseModel):
    config_name: str = Field(min_length=1)


class WorkspaceResponse(WorkspaceRecord):
    """Serialized workspace returned to clients."""

    full_path: str
    current_branch: str | None = None


class ReconcileResponse(BaseModel):
    removed: list[str] = Field(default_factory=list)
