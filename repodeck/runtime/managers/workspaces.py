"""Workspace manager -- provisions working copies and keeps records in sync with disk.

The WorkspaceManager is a process-level singleton initialised in the app
lifespan.  It coordinates two sources of truth that can diverge:

- **Record store**: one row per working copy (``WorkspaceStore``)
- **Disk**: directories under the workspaces root, as seen by ``git``

Every mutation is verified after the fact (directory exists / is gone / is
a git repository) instead of assumed.  A failed provision deletes its row
(compensating delete) so no ``cloning`` row outlives its request; stray
directories are removed by ``reconcile``.
"""

from __future__ import annotations

import shutil
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from anyio import to_thread
from loguru import logger

from repodeck.runtime.errors import (
    CommandFailedError,
    ConfigNotFoundError,
    DirectoryConflictError,
    DuplicateWorkspaceError,
    VerificationFailedError,
    WorkspaceNotFoundError,
    WorktreeConflictError,
)
from repodeck.runtime.git.credentials import GitCredentials
from repodeck.runtime.git.repo import GitRepo, clone
from repodeck.runtime.git.worktrees import (
    DEFAULT_MAX_ATTEMPTS,
    create_worktree_safely,
    delete_worktree,
    list_worktrees,
)
from repodeck.runtime.locks import KeyedLock, workspace_key
from repodeck.runtime.models.enums import CloneStatus, ProvisionMode
from repodeck.runtime.models.workspace import BranchListing, WorkspaceFields, WorkspaceRecord
from repodeck.runtime.paths import WorkspacePaths, branch_dir_name, dir_name_of, extract_repo_name
from repodeck.runtime.profiles import write_atomic

if TYPE_CHECKING:
    from repodeck.runtime.git.executor import CommandExecutor
    from repodeck.runtime.profiles import ProfileSource
    from repodeck.runtime.settings import RepodeckSettings
    from repodeck.runtime.store.base import WorkspaceStore

DEFAULT_PROFILE_FILENAME = "opencode.json"


@dataclass(frozen=True)
class ProvisionPlan:
    """Where and how a provision request lands on disk."""

    mode: ProvisionMode
    repo_name: str
    dir_name: str


class WorkspaceManager:
    """Provisioning engine: clone, worktree, branch, pull, delete, reconcile.

    Operations on the same ``(repository_url, branch)`` are serialized by a
    keyed lock; steps that change a base clone (its checkout or its worktree
    registrations, or the clone itself) additionally hold a per-base lock.
    Lock order is always workspace key, then base path.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        executor: CommandExecutor,
        root: Path,
        *,
        credentials: GitCredentials | None = None,
        profiles: ProfileSource | None = None,
        profile_filename: str = DEFAULT_PROFILE_FILENAME,
        worktree_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._executor = executor
        self.paths = WorkspacePaths(root)
        self._credentials = credentials or GitCredentials()
        self._profiles = profiles
        self._profile_filename = profile_filename
        self._worktree_max_attempts = worktree_max_attempts
        self._workspace_locks = KeyedLock("workspace-lock")
        self._base_locks = KeyedLock("base-lock")

    @classmethod
    def from_settings(
        cls,
        settings: RepodeckSettings,
        store: WorkspaceStore,
        executor: CommandExecutor,
        profiles: ProfileSource | None = None,
    ) -> WorkspaceManager:
        return cls(
            store,
            executor,
            settings.repos_path,
            credentials=GitCredentials(token=settings.resolve_git_token(), host=settings.git_token_host),
            profiles=profiles,
            profile_filename=settings.profile_filename,
            worktree_max_attempts=settings.worktree_max_attempts,
        )

    @property
    def store(self) -> WorkspaceStore:
        return self._store

    # -- Lookup ----------------------------------------------------------------

    async def get(self, workspace_id: int) -> WorkspaceRecord:
        """Raises ``WorkspaceNotFoundError`` if missing."""
        record = await self._store.get_by_id(workspace_id)
        if record is None:
            raise WorkspaceNotFoundError(workspace_id)
        return record

    async def list(self) -> list[WorkspaceRecord]:
        return await self._store.list_all()

    def full_path(self, record: WorkspaceRecord) -> Path:
        return self.paths.resolve(record.local_path)

    # -- Provision -------------------------------------------------------------

    async def provision(
        self,
        repository_url: str,
        branch: str | None = None,
        *,
        use_worktree: bool = False,
    ) -> WorkspaceRecord:
        """Materialize ``(repository_url, branch)`` as a working copy and return its row.

        Idempotent: an existing row for the pair is returned unchanged without
        touching disk.  On failure the new row is deleted and the error
        propagates.
        """
        branch = branch or None
        existing = await self._store.get_by_url_and_branch(repository_url, branch)
        if existing is not None:
            logger.info("Workspace already exists: {}", existing.label)
            return existing

        async with self._workspace_locks.hold(workspace_key(repository_url, branch)):
            existing = await self._store.get_by_url_and_branch(repository_url, branch)
            if existing is not None:
                logger.info("Workspace already exists: {}", existing.label)
                return existing
            with logger.contextualize(workspace=_tag(repository_url, branch)):
                return await self._provision(repository_url, branch, use_worktree)

    async def _provision(self, repository_url: str, branch: str | None, use_worktree: bool) -> WorkspaceRecord:
        await to_thread.run_sync(self.paths.ensure_root)
        plan = await self.plan(repository_url, branch, use_worktree=use_worktree)
        logger.info("Provisioning {} as {} in '{}'", _tag(repository_url, branch), plan.mode, plan.dir_name)

        try:
            record = await self._store.insert(
                WorkspaceFields(
                    repository_url=repository_url,
                    local_path=plan.dir_name,
                    branch=branch,
                    default_branch=branch or "main",
                    clone_status=CloneStatus.CLONING,
                    cloned_at=datetime.now(UTC),
                    is_worktree=plan.mode is ProvisionMode.WORKTREE,
                )
            )
        except DuplicateWorkspaceError:
            # Lost a race against another process; return the winner's row.
            winner = await self._store.get_by_url_and_branch(repository_url, branch)
            if winner is None:
                raise
            return winner

        try:
            await self._materialize(plan, repository_url, branch)
            await self._verify_repository(self.paths.resolve(plan.dir_name))
            record = await self._store.update_status(record.id, CloneStatus.READY)
        except Exception:
            logger.error("Failed to provision {}; removing workspace row {}", record.label, record.id)
            await self._store.delete(record.id)
            raise

        suffix = " (worktree)" if record.is_worktree else ""
        logger.info("Workspace ready: {}{}", record.label, suffix)
        return record

    async def plan(self, repository_url: str, branch: str | None, *, use_worktree: bool = False) -> ProvisionPlan:
        """Choose the provisioning mode and target directory.

        Never picks a directory that another row owns: the base directory may
        only be reused when unowned, and a derived ``{repo}-{branch}``
        directory owned by a different repository is a conflict.
        """
        repo_name = extract_repo_name(repository_url)
        base_path = self.paths.resolve(repo_name)
        base_exists = await to_thread.run_sync(base_path.is_dir)
        base_owner = await self._store.get_by_local_path(repo_name)
        base_usable = base_exists and (base_owner is None or base_owner.repository_url == repository_url)

        if branch and use_worktree and base_usable:
            plan = ProvisionPlan(ProvisionMode.WORKTREE, repo_name, branch_dir_name(repo_name, branch))
        elif branch and (use_worktree or base_owner is not None):
            plan = ProvisionPlan(ProvisionMode.SEPARATE_CLONE, repo_name, branch_dir_name(repo_name, branch))
        elif base_owner is not None:
            msg = (
                f"Directory '{repo_name}' is already used by workspace {base_owner.id} "
                f"({base_owner.label}); cannot provision {repository_url} there"
            )
            raise DirectoryConflictError(msg)
        elif base_exists:
            plan = ProvisionPlan(ProvisionMode.REUSE_BASE, repo_name, repo_name)
        else:
            plan = ProvisionPlan(ProvisionMode.FRESH_CLONE, repo_name, repo_name)

        if plan.dir_name != repo_name:
            owner = await self._store.get_by_local_path(plan.dir_name)
            if owner is not None:
                msg = (
                    f"Directory '{plan.dir_name}' is already used by workspace {owner.id} "
                    f"({owner.label}); cannot provision {_tag(repository_url, branch)} there"
                )
                raise DirectoryConflictError(msg)
        return plan

    async def _materialize(self, plan: ProvisionPlan, repository_url: str, branch: str | None) -> None:
        target = self.paths.resolve(plan.dir_name)

        if plan.mode is ProvisionMode.WORKTREE:
            if branch is None:  # pragma: no cover - guarded by plan()
                msg = "Worktree provisioning requires a branch"
                raise ValueError(msg)
            await self._create_worktree(self.paths.resolve(plan.repo_name), target, branch)
            return

        if plan.mode is ProvisionMode.REUSE_BASE:
            repo = GitRepo(self._executor, target)
            if await repo.is_valid():
                logger.info("Reusing existing repository at {}", target)
                if branch:
                    async with self._base_locks.hold(str(target)):
                        await repo.fetch_all()
                        await repo.checkout_branch(branch)
                return
            logger.warning("Invalid repository directory found, removing and re-cloning: {}", plan.dir_name)

        if await _exists(target):
            logger.info("Workspace directory exists, removing it: {}", plan.dir_name)
            await self._clear_directory(target)
        await self._clone(repository_url, target, branch)

    async def _create_worktree(self, base_path: Path, target: Path, branch: str) -> None:
        base = GitRepo(self._executor, base_path)
        logger.info("Creating worktree for branch '{}' from {}", branch, base_path)
        async with self._base_locks.hold(str(base_path)):
            await base.fetch_all()
            if await _exists(target):
                # Unowned leftover: plan() guarantees no row references it.
                if any(entry.matches(target) for entry in await list_worktrees(base)):
                    await delete_worktree(base, target)
                if await _exists(target):
                    await self._clear_directory(target)
            await create_worktree_safely(base, target, branch, max_attempts=self._worktree_max_attempts)

        if not await _exists(target):
            msg = f"Worktree directory was not created at: {target}"
            raise VerificationFailedError(msg)
        logger.info("Worktree verified at: {}", target)

    async def _clone(self, repository_url: str, target: Path, branch: str | None) -> None:
        """Clone into *target*; a missing remote branch falls back to default + local branch."""
        clone_url = self._credentials.authenticate(repository_url)
        secrets = self._credentials.secrets
        logger.info("Cloning {}{} into {}", repository_url, f" (branch {branch})" if branch else "", target.name)
        try:
            await clone(self._executor, clone_url, target, branch=branch, secrets=secrets)
        except CommandFailedError as exc:
            if "destination path" in exc.stderr and "already exists" in exc.stderr:
                msg = f"Workspace directory {target.name} already exists. Delete it manually and retry."
                raise DirectoryConflictError(msg) from exc
            if not branch or not _is_missing_remote_branch(exc):
                raise
            logger.info("Branch '{}' not found on remote, cloning default branch and creating it locally", branch)
            repo = await clone(self._executor, clone_url, target, secrets=secrets)
            await repo.checkout_branch(branch)

    async def _verify_repository(self, path: Path) -> None:
        if not await _exists(path) or not await GitRepo(self._executor, path).is_valid():
            msg = f"Provisioned directory {path} is not a valid git repository"
            raise VerificationFailedError(msg)

    async def _clear_directory(self, path: Path) -> None:
        """Remove an unowned leftover before cloning into *path*."""
        try:
            await to_thread.run_sync(partial(_remove_path, path))
        except OSError as exc:
            logger.error("Failed to clean up existing directory {}: {}", path.name, exc)
        if await _exists(path):
            msg = f"Cannot clone: directory {path.name} exists and could not be removed"
            raise DirectoryConflictError(msg)

    # -- Deprovision -----------------------------------------------------------

    async def deprovision(self, workspace_id: int) -> None:
        """Delete the working copy and then its row.

        Worktrees are unregistered from their base first so the base clone's
        metadata stays consistent.  A base clone that still backs worktree rows
        is refused with ``WorktreeConflictError``.  Raises
        ``VerificationFailedError`` if the directory is still present after
        removal (the row is kept).
        """
        record = await self.get(workspace_id)
        key = workspace_key(record.repository_url, record.branch)
        async with self._workspace_locks.hold(key), self._hold_base(record):
            with logger.contextualize(workspace=_tag(record.repository_url, record.branch)):
                await self._deprovision(record)

    async def _deprovision(self, record: WorkspaceRecord) -> None:
        target = self.paths.resolve(record.local_path)
        logger.info("Deleting workspace {} ({})", record.id, record.label)

        if self._is_base(record):
            dependents = [
                other
                for other in await self._store.list_all()
                if other.is_worktree and other.repository_url == record.repository_url
            ]
            if dependents:
                names = ", ".join(f"{other.id} ({other.local_path})" for other in dependents)
                msg = f"Workspace {record.id} is the base clone of worktree workspaces {names}; delete those first"
                raise WorktreeConflictError(msg)

        base: GitRepo | None = None
        if record.is_worktree:
            base = GitRepo(self._executor, self.paths.base_path(record.repository_url))
            logger.info("Removing worktree {} from base repository {}", target.name, base.path)
            async with self._base_locks.hold(str(base.path)):
                await delete_worktree(base, target)

        try:
            await to_thread.run_sync(partial(_remove_path, target))
        except OSError as exc:
            logger.error("Failed to remove directory {}: {}", target, exc)
        if await _exists(target):
            msg = f"Failed to delete workspace directory: {target}"
            raise VerificationFailedError(msg)

        if base is not None:
            try:
                await base.worktree_prune()
            except CommandFailedError as exc:
                logger.warning("Failed to prune worktree references in {}: {}", base.path, exc.stderr.strip())

        await self._store.delete(record.id)
        logger.info("Workspace deleted: {}", record.label)

    # -- Branches --------------------------------------------------------------

    async def current_branch(self, record: WorkspaceRecord) -> str | None:
        """HEAD's short name, or ``None`` if git cannot tell (never raises)."""
        try:
            return await self._repo(record).current_branch()
        except CommandFailedError as exc:
            logger.warning("Failed to get current branch for workspace {}: {}", record.id, exc.stderr.strip())
            return None

    async def list_branches(self, workspace_id: int) -> BranchListing:
        record = await self.get(workspace_id)
        repo = self._repo(record)
        await repo.fetch_all()
        local = await repo.local_branches()
        remote = await repo.remote_branches()
        current = await self.current_branch(record)
        return BranchListing(local=local, all=list(dict.fromkeys([*local, *remote])), current=current)

    async def switch_branch(self, workspace_id: int, branch: str) -> WorkspaceRecord:
        record = await self.get(workspace_id)
        key = workspace_key(record.repository_url, record.branch)
        async with self._workspace_locks.hold(key), self._hold_base(record):
            with logger.contextualize(workspace=_tag(record.repository_url, record.branch)):
                repo = self._repo(record)
                logger.info("Switching to branch '{}' in {}", branch, record.local_path)
                await repo.fetch_all()
                await repo.checkout_branch(branch)
                logger.info("Switched to branch '{}'", branch)
        return record

    # -- Pull ------------------------------------------------------------------

    async def pull(self, workspace_id: int) -> WorkspaceRecord:
        record = await self.get(workspace_id)
        key = workspace_key(record.repository_url, record.branch)
        async with self._workspace_locks.hold(key), self._hold_base(record):
            with logger.contextualize(workspace=_tag(record.repository_url, record.branch)):
                logger.info("Pulling {}", record.label)
                try:
                    await self._repo(record).pull()
                except CommandFailedError:
                    logger.error("Failed to pull {}", record.label)
                    raise
                updated = await self._store.update_last_pulled(record.id, datetime.now(UTC))
                logger.info("Pulled {}", record.label)
                return updated

    # -- Config profiles -------------------------------------------------------

    async def assign_config(self, workspace_id: int, config_name: str) -> WorkspaceRecord:
        """Write profile *config_name* into the working copy and record it on the row."""
        record = await self.get(workspace_id)
        content = None
        if self._profiles is not None:
            content = await to_thread.run_sync(self._profiles.get, config_name)
        if content is None:
            raise ConfigNotFoundError(config_name)

        workdir = self.paths.resolve(record.local_path)
        if not await to_thread.run_sync(workdir.is_dir):
            msg = f"Working copy directory missing for workspace {record.id}: {workdir}"
            raise VerificationFailedError(msg)

        await to_thread.run_sync(partial(write_atomic, workdir / self._profile_filename, content))
        updated = await self._store.update_config_name(record.id, config_name)
        logger.info("Assigned config '{}' to workspace {} ({})", config_name, record.id, record.label)
        return updated

    # -- Reconcile -------------------------------------------------------------

    async def reconcile(self) -> list[str]:
        """Remove entries under the workspaces root that no row references.

        Best-effort per entry; never adopts or registers what it finds.
        Returns the names that were removed.
        """
        await to_thread.run_sync(self.paths.ensure_root)
        entries = await to_thread.run_sync(partial(_list_entries, self.paths.root))
        if not entries:
            return []

        tracked = {dir_name_of(record.local_path) for record in await self._store.list_all()}
        orphans = [name for name in entries if name not in tracked]
        if not orphans:
            return []

        logger.info("Found {} orphaned directories: {}", len(orphans), ", ".join(orphans))
        removed: list[str] = []
        for name in orphans:
            try:
                logger.info("Removing orphaned directory: {}", name)
                await to_thread.run_sync(partial(_remove_path, self.paths.root / name))
            except OSError as exc:
                logger.warning("Failed to remove orphaned directory {}: {}", name, exc)
                continue
            removed.append(name)
        return removed

    # -- Helpers ---------------------------------------------------------------

    def _repo(self, record: WorkspaceRecord) -> GitRepo:
        return GitRepo(self._executor, self.paths.resolve(record.local_path))

    def _is_base(self, record: WorkspaceRecord) -> bool:
        """Whether *record* owns the base clone directory of its repository."""
        return not record.is_worktree and self.full_path(record) == self.paths.base_path(record.repository_url)

    def _hold_base(self, record: WorkspaceRecord) -> AbstractAsyncContextManager[None]:
        """The base lock when *record* is a base clone, otherwise a no-op."""
        if not self._is_base(record):
            return nullcontext()
        return self._base_locks.hold(str(self.paths.base_path(record.repository_url)))


def _tag(repository_url: str, branch: str | None) -> str:
    name = extract_repo_name(repository_url)
    return f"{name}#{branch}" if branch else name


def _is_missing_remote_branch(exc: CommandFailedError) -> bool:
    return "not found in upstream" in exc.stderr or "Could not find remote branch" in exc.stderr


async def _exists(path: Path) -> bool:
    return await to_thread.run_sync(path.exists)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _remove_path(path: Path) -> None:
    """Remove a directory tree, file or symlink.  No-op if nothing is there."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _list_entries(root: Path) -> list[str]:
    """Visible entries directly under *root*, sorted."""
    return sorted(p.name for p in root.iterdir() if not p.name.startswith("."))
