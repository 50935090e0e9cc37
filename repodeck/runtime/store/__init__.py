from repodeck.runtime.store.base import WorkspaceStore
from repodeck.runtime.store.memory import MemoryWorkspaceStore
from repodeck.runtime.store.sql import SqlWorkspaceStore

__all__ = ["MemoryWorkspaceStore", "SqlWorkspaceStore", "WorkspaceStore"]
