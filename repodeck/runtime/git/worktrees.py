"""Worktree safety subroutines.

Git worktrees share refs, HEAD bookkeeping and worktree registrations with
their base clone, which gives them a few sharp edges:

- a branch checked out in one place cannot back a second worktree,
- a registration can outlive the directory it points to,
- removal can fail half-way and leave metadata behind.

Creation is driven by a small explicit state machine so the retry bound and
the failure classification can be tested without a real repository::

    attempt --ok--> done
       |
       +--fail--> classify_failure --> next_step
                    CLEANUP_AND_RETRY : remove stale registration, attempt again
                    RETRY             : attempt again
                    CONFLICT          : raise WorktreeConflictError
                    FATAL             : re-raise the CommandFailedError
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from loguru import logger

from repodeck.runtime.errors import CommandFailedError, WorktreeConflictError
from repodeck.runtime.git.repo import GitRepo

DEFAULT_MAX_ATTEMPTS = 3

# ``already used by worktree`` since git 2.42, ``already checked out`` before.
_BRANCH_IN_USE_MARKERS = ("already used by worktree", "is already checked out at")


class FailureKind(StrEnum):
    BRANCH_IN_USE = "branch_in_use"
    OTHER = "other"


class WorktreeStep(StrEnum):
    CLEANUP_AND_RETRY = "cleanup_and_retry"
    RETRY = "retry"
    CONFLICT = "conflict"
    FATAL = "fatal"


def classify_failure(exc: CommandFailedError) -> FailureKind:
    text = f"{exc.stderr}\n{exc.stdout}"
    if any(marker in text for marker in _BRANCH_IN_USE_MARKERS):
        return FailureKind.BRANCH_IN_USE
    return FailureKind.OTHER


def next_step(kind: FailureKind, attempt: int, max_attempts: int) -> WorktreeStep:
    """Decide what follows failed attempt number *attempt* (1-based)."""
    last = attempt >= max_attempts
    if kind is FailureKind.BRANCH_IN_USE:
        return WorktreeStep.CONFLICT if last else WorktreeStep.CLEANUP_AND_RETRY
    return WorktreeStep.FATAL if last else WorktreeStep.RETRY


# ---------------------------------------------------------------------------
# Worktree listing
# ---------------------------------------------------------------------------


@dataclass
class WorktreeEntry:
    """One record of ``git worktree list --porcelain``."""

    path: Path
    head: str | None = None
    branch: str | None = None
    detached: bool = False
    bare: bool = False
    prunable: bool = False

    def matches(self, path: Path) -> bool:
        return _same_path(self.path, path)


def parse_worktree_list(output: str) -> list[WorktreeEntry]:
    entries: list[WorktreeEntry] = []
    current: WorktreeEntry | None = None
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            current = WorktreeEntry(path=Path(value))
            entries.append(current)
        elif current is None:
            continue
        elif key == "HEAD":
            current.head = value
        elif key == "branch":
            current.branch = value.removeprefix("refs/heads/")
        elif key == "detached":
            current.detached = True
        elif key == "bare":
            current.bare = True
        elif key == "prunable":
            current.prunable = True
    return entries


async def list_worktrees(base: GitRepo) -> list[WorktreeEntry]:
    return parse_worktree_list(await base.worktree_list())


def _same_path(a: Path, b: Path) -> bool:
    return a.resolve(strict=False) == b.resolve(strict=False)


# ---------------------------------------------------------------------------
# Subroutines
# ---------------------------------------------------------------------------


async def free_branch(base: GitRepo, branch: str) -> bool:
    """Move the base clone off *branch* if its primary worktree has it checked out.

    Switches to the remote default branch (``main`` as a fallback).  Raises
    ``WorktreeConflictError`` when *branch* is the default branch itself: the
    base has nowhere else to go.  Returns whether the base was moved.
    """
    try:
        current = await base.current_branch()
    except CommandFailedError:
        return False
    if current != branch:
        return False

    default = await base.default_branch()
    if default == branch:
        msg = f"Branch '{branch}' is the default branch checked out in {base.path}; it cannot back a worktree"
        raise WorktreeConflictError(msg)

    logger.info("Branch '{}' is checked out in {}, switching base to '{}'", branch, base.path, default)
    try:
        await base.checkout(default)
    except CommandFailedError:
        if default == "main":
            raise
        logger.warning("Could not switch {} to '{}', trying 'main'", base.path, default)
        await base.checkout("main")
    return True


async def cleanup_stale_worktree(base: GitRepo, worktree_path: Path) -> bool:
    """Force-remove the registration for *worktree_path*, or prune when none exists.

    Registrations for other paths are left alone; ``prune`` only drops those
    whose directories no longer exist.  Returns ``False`` if git refused.
    """
    try:
        entries = await list_worktrees(base)
        if any(entry.matches(worktree_path) for entry in entries):
            logger.info("Removing stale worktree registration: {}", worktree_path)
            await base.worktree_remove(worktree_path, force=True)
        else:
            logger.info("No registration for {}, pruning worktree metadata", worktree_path)
            await base.worktree_prune()
    except CommandFailedError as exc:
        logger.warning("Stale worktree cleanup failed for {}: {}", worktree_path, exc.stderr.strip())
        return False
    return True


async def create_worktree_safely(
    base: GitRepo,
    worktree_path: Path,
    branch: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> None:
    """Create a worktree for *branch* at *worktree_path*, freeing and cleaning as needed.

    Raises ``WorktreeConflictError`` if the branch is the base clone's checked
    out default branch, or is still held by another worktree on the final
    attempt.  Any other git failure on the final attempt propagates as
    ``CommandFailedError``.
    """
    await free_branch(base, branch)

    exists = await base.has_local_branch(branch) or await base.has_remote_branch(branch)
    if not exists:
        logger.info("Branch '{}' does not exist, creating it in the worktree", branch)

    attempt = 1
    while True:
        logger.info("Creating worktree (attempt {}/{}): {} -> {}", attempt, max_attempts, branch, worktree_path)
        try:
            await base.worktree_add(worktree_path, branch, create=not exists)
        except CommandFailedError as exc:
            kind = classify_failure(exc)
            step = next_step(kind, attempt, max_attempts)
            if step is WorktreeStep.CONFLICT:
                msg = (
                    f"Failed to create worktree at {worktree_path}: branch '{branch}' is already used by a "
                    f"worktree of {base.path} and cleanup did not release it. Manual intervention may be required."
                )
                raise WorktreeConflictError(msg) from exc
            if step is WorktreeStep.FATAL:
                logger.error("Worktree creation failed after {} attempts: {}", attempt, exc.stderr.strip())
                raise
            if step is WorktreeStep.CLEANUP_AND_RETRY:
                logger.warning("Branch '{}' already used by a worktree (attempt {}/{})", branch, attempt, max_attempts)
                if not await cleanup_stale_worktree(base, worktree_path):
                    logger.warning("Cleanup failed, will retry")
            else:
                logger.warning(
                    "Worktree creation failed (attempt {}/{}): {}, retrying",
                    attempt,
                    max_attempts,
                    exc.stderr.strip(),
                )
            attempt += 1
        else:
            logger.info("Worktree created: {}", worktree_path)
            return


async def delete_worktree(base: GitRepo, worktree_path: Path) -> bool:
    """Unregister *worktree_path* from *base*: remove, then force, then prune + force.

    Never raises; the caller deletes the directory regardless.  Returns whether
    git-level removal succeeded.
    """
    try:
        await base.worktree_remove(worktree_path)
    except CommandFailedError as exc:
        logger.warning("Worktree remove failed, trying --force: {}", exc.stderr.strip())
    else:
        logger.info("Removed worktree: {}", worktree_path)
        return True

    try:
        await base.worktree_remove(worktree_path, force=True)
    except CommandFailedError as exc:
        logger.warning("Forced worktree remove failed, pruning: {}", exc.stderr.strip())
    else:
        logger.info("Force-removed worktree: {}", worktree_path)
        return True

    try:
        await base.worktree_prune()
        await base.worktree_remove(worktree_path, force=True)
    except CommandFailedError as exc:
        logger.error("All worktree removal methods failed for {}: {}", worktree_path, exc.stderr.strip())
        return False
    logger.info("Removed worktree after prune: {}", worktree_path)
    return True
