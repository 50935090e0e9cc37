"""Directory naming for working copies under the workspaces root.

Layout::

    {repos_root}/{repo_name}/                 -> base clone
    {repos_root}/{repo_name}-{branch}/        -> worktree or separate branch clone

``local_path`` values stored on workspace rows are these directory names,
always relative to the root.
"""

from __future__ import annotations

import re
import time
from pathlib import Path

_BRANCH_UNSAFE = re.compile(r"[\\/]")


def extract_repo_name(url: str) -> str:
    """Short repository name: last path segment with ``.git`` stripped.

    Handles HTTPS, SSH (``git@host:owner/repo.git``) and local paths.  Falls
    back to ``repo-<unix-ms>`` when the URL has no usable segment.
    """
    tail = re.split(r"[/:]", url.strip().rstrip("/"))[-1]
    name = tail.removesuffix(".git")
    if not name or name in {".", ".."}:
        return f"repo-{int(time.time() * 1000)}"
    return name


def sanitize_branch(branch: str) -> str:
    """Filesystem-safe branch fragment (path separators become ``-``)."""
    return _BRANCH_UNSAFE.sub("-", branch)


def branch_dir_name(repo_name: str, branch: str) -> str:
    return f"{repo_name}-{sanitize_branch(branch)}"


class WorkspacePaths:
    """Resolves workspace directory names against the workspaces root."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def resolve(self, local_path: str) -> Path:
        """Absolute directory for a stored ``local_path`` (last segment only)."""
        return (self.root / dir_name_of(local_path)).absolute()

    def base_path(self, repository_url: str) -> Path:
        """Directory of the base clone for *repository_url*."""
        return self.resolve(extract_repo_name(repository_url))

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)


def dir_name_of(local_path: str) -> str:
    """Directory name part of a stored ``local_path``."""
    return local_path.rstrip("/").split("/")[-1] or local_path
