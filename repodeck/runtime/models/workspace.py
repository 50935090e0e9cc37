"""Workspace data model.

A workspace is a persisted record plus its working copy of a repository at
a given branch, living at ``{repos_root}/{local_path}``.  The working copy is
either an independent clone or a git worktree of the repository's base clone.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from repodeck.runtime.models.enums import CloneStatus


class WorkspaceFields(BaseModel):
    """Values supplied when inserting a workspace row (the store assigns ``id``)."""

    repository_url: str
    local_path: str
    branch: str | None = None
    default_branch: str = "main"
    clone_status: CloneStatus = CloneStatus.CLONING
    cloned_at: datetime
    is_worktree: bool = False


class WorkspaceRecord(BaseModel):
    """Workspace row as returned by every store implementation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    repository_url: str
    local_path: str
    branch: str | None = None
    default_branch: str = "main"
    clone_status: CloneStatus
    cloned_at: datetime
    last_pulled: datetime | None = None
    config_name: str | None = Field(default=None, description="Configuration profile materialized in the directory")
    is_worktree: bool = False

    @property
    def label(self) -> str:
        """``url#branch`` for log lines and error messages."""
        return f"{self.repository_url}#{self.branch}" if self.branch else self.repository_url


class BranchListing(BaseModel):
    local: list[str] = Field(default_factory=list)
    all: list[str] = Field(default_factory=list, description="Union of local and remote names, origin/ stripped")
    current: str | None = None
