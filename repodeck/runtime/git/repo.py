"""Typed handle over a single git working directory.

All commands run as ``git -C <path> ...`` so that a missing directory
surfaces as a ``CommandFailedError`` from git rather than an ``OSError``
from the process launcher.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path

from loguru import logger

from repodeck.runtime.errors import CommandFailedError
from repodeck.runtime.git.executor import CommandExecutor

REMOTE = "origin"
FALLBACK_DEFAULT_BRANCH = "main"


class BranchResolution(StrEnum):
    """Which path the branch tie-break took."""

    LOCAL = "local"
    """Existing local branch checked out directly."""

    TRACKING = "tracking"
    """New local branch created from ``origin/<branch>``."""

    CREATED = "created"
    """New local branch created from the current HEAD."""


class GitRepo:
    def __init__(self, executor: CommandExecutor, path: Path) -> None:
        self.executor = executor
        self.path = path

    def __repr__(self) -> str:
        return f"GitRepo({str(self.path)!r})"

    async def git(self, *args: str) -> str:
        return await self.executor.git("-C", str(self.path), *args)

    # -- Inspection ------------------------------------------------------------

    async def is_valid(self) -> bool:
        """Whether the directory is a usable git repository."""
        try:
            await self.git("rev-parse", "--git-dir")
        except CommandFailedError:
            return False
        return True

    async def ref_exists(self, ref: str) -> bool:
        try:
            await self.git("rev-parse", "--verify", "--quiet", ref)
        except CommandFailedError:
            return False
        return True

    async def has_local_branch(self, branch: str) -> bool:
        return await self.ref_exists(f"refs/heads/{branch}")

    async def has_remote_branch(self, branch: str) -> bool:
        return await self.ref_exists(f"refs/remotes/{REMOTE}/{branch}")

    async def current_branch(self) -> str:
        """Short name of HEAD (``HEAD`` when detached)."""
        return (await self.git("rev-parse", "--abbrev-ref", "HEAD")).strip()

    async def default_branch(self) -> str:
        """Default branch from the remote's symbolic HEAD, ``main`` if unknown."""
        try:
            ref = (await self.git("rev-parse", "--abbrev-ref", f"{REMOTE}/HEAD")).strip()
        except CommandFailedError:
            return FALLBACK_DEFAULT_BRANCH
        return ref.removeprefix(f"{REMOTE}/") or FALLBACK_DEFAULT_BRANCH

    async def local_branches(self) -> list[str]:
        out = await self.git("for-each-ref", "--format=%(refname)", "refs/heads")
        return [line.removeprefix("refs/heads/") for line in out.splitlines() if line.strip()]

    async def remote_branches(self) -> list[str]:
        """Remote-tracking branch names with the ``origin/`` prefix stripped."""
        out = await self.git("for-each-ref", "--format=%(refname)", "refs/remotes")
        names = []
        for line in out.splitlines():
            ref = line.strip().removeprefix("refs/remotes/")
            if not ref or ref.endswith("/HEAD"):
                continue
            names.append(ref.removeprefix(f"{REMOTE}/"))
        return names

    # -- Mutation --------------------------------------------------------------

    async def fetch_all(self) -> None:
        await self.git("fetch", "--all")

    async def pull(self) -> None:
        await self.git("pull")

    async def checkout(self, branch: str) -> None:
        await self.git("checkout", branch)

    async def checkout_new(self, branch: str, start_point: str | None = None) -> None:
        args = ["checkout", "-b", branch]
        if start_point:
            args.append(start_point)
        await self.git(*args)

    async def checkout_branch(self, branch: str) -> BranchResolution:
        """Switch to *branch* using the local > remote-tracking > new tie-break."""
        if await self.has_local_branch(branch):
            logger.info("Checking out existing local branch: {}", branch)
            await self.checkout(branch)
            return BranchResolution.LOCAL
        if await self.has_remote_branch(branch):
            logger.info("Checking out remote branch: {}/{}", REMOTE, branch)
            await self.checkout_new(branch, f"{REMOTE}/{branch}")
            return BranchResolution.TRACKING
        logger.info("Creating new branch: {}", branch)
        await self.checkout_new(branch)
        return BranchResolution.CREATED

    # -- Worktrees -------------------------------------------------------------

    async def worktree_add(self, worktree_path: Path, branch: str, *, create: bool = False) -> None:
        if create:
            await self.git("worktree", "add", "-b", branch, str(worktree_path))
        else:
            await self.git("worktree", "add", str(worktree_path), branch)

    async def worktree_list(self) -> str:
        return await self.git("worktree", "list", "--porcelain")

    async def worktree_remove(self, worktree_path: Path, *, force: bool = False) -> None:
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        await self.git(*args, str(worktree_path))

    async def worktree_prune(self) -> None:
        await self.git("worktree", "prune")


async def clone(
    executor: CommandExecutor,
    url: str,
    dest: Path,
    *,
    branch: str | None = None,
    secrets: Sequence[str] = (),
) -> GitRepo:
    """``git clone [-b branch] -- url dest`` run from ``dest.parent``."""
    args = ["clone"]
    if branch:
        args += ["-b", branch]
    args += ["--", url, dest.name]
    await executor.git(*args, cwd=dest.parent, secrets=secrets)
    return GitRepo(executor, dest)
