"""Data models for the workspace runtime."""

from repodeck.runtime.models.api import (
    BranchSwitch,
    ConfigSwitch,
    ReconcileResponse,
    WorkspaceCreate,
    WorkspaceResponse,
)
from repodeck.runtime.models.enums import CloneStatus, ProvisionMode
from repodeck.runtime.models.workspace import BranchListing, WorkspaceFields, WorkspaceRecord

__all__ = [
    # Workspace
    "BranchListing",
    # API schemas
    "BranchSwitch",
    # Enums
    "CloneStatus",
    "ConfigSwitch",
    "ProvisionMode",
    "ReconcileResponse",
    "WorkspaceCreate",
    "WorkspaceFields",
    "WorkspaceRecord",
    "WorkspaceResponse",
]
