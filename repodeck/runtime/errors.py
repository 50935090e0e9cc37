"""Domain errors raised by the workspace runtime.

Managers and git helpers raise these; ``app.py`` translates them into HTTP
responses.  Every message names the repository URL, branch or path involved
so failures can be diagnosed without reading logs.
"""

from __future__ import annotations

from collections.abc import Sequence


class WorkspaceError(Exception):
    """Base class for all workspace runtime errors."""


class WorkspaceNotFoundError(WorkspaceError, LookupError):
    """Raised when a workspace id is unknown."""

    def __init__(self, workspace_id: int) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Workspace '{workspace_id}' not found")


class ConfigNotFoundError(WorkspaceError, LookupError):
    """Raised when a configuration profile name is unknown."""

    def __init__(self, config_name: str) -> None:
        self.config_name = config_name
        super().__init__(f"Config '{config_name}' not found")


class DuplicateWorkspaceError(WorkspaceError, ValueError):
    """Raised by a store when ``(repository_url, branch)`` or ``local_path`` is taken."""


class CommandFailedError(WorkspaceError):
    """An external command exited non-zero.

    ``argv`` is stored with secrets already redacted.
    """

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str, stdout: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(f"Command {' '.join(self.argv)!r} failed with exit code {returncode}: {detail}")


class DirectoryConflictError(WorkspaceError):
    """The target directory exists and could not be cleared or is owned by another workspace."""


class WorktreeConflictError(WorkspaceError):
    """A branch is still held by another worktree after cleanup and retries."""


class VerificationFailedError(WorkspaceError):
    """A post-action check contradicts the expected outcome."""
