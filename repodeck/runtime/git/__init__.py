"""Git orchestration helpers.

Everything here shells out to an external ``git`` executable through
``CommandExecutor``; nothing reimplements git itself.
"""

from repodeck.runtime.git.credentials import GitCredentials
from repodeck.runtime.git.executor import CommandExecutor
from repodeck.runtime.git.repo import BranchResolution, GitRepo

__all__ = ["BranchResolution", "CommandExecutor", "GitCredentials", "GitRepo"]
