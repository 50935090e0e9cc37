"""Shared enumerations used across the workspace runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Workspace ---------------------------------------------------------------


class CloneStatus(StrEnum):
    """Persisted provisioning status.

    ``cloning`` is transient: a failed provision deletes its row instead of
    recording an error state.
    """

    CLONING = "cloning"
    READY = "ready"


class ProvisionMode(StrEnum):
    """How a provision request is materialized on disk."""

    WORKTREE = "worktree"
    SEPARATE_CLONE = "separate_clone"
    REUSE_BASE = "reuse_base"
    FRESH_CLONE = "fresh_clone"
