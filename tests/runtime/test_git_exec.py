"""Tests for the command executor, credential injection and GitRepo helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from repodeck.runtime.errors import CommandFailedError
from repodeck.runtime.git import BranchResolution, CommandExecutor, GitCredentials, GitRepo
from repodeck.runtime.git.repo import clone

# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def test_credentials_inject_token_for_host() -> None:
    creds = GitCredentials(token="s3cr3t")
    assert creds.authenticate("https://github.com/acme/widget.git") == "https://s3cr3t@github.com/acme/widget.git"
    assert creds.secrets == ("s3cr3t",)


@pytest.mark.parametrize(
    "url",
    [
        "git@github.com:acme/widget.git",
        "https://gitlab.com/acme/widget.git",
        "https://github.com.evil.example/acme/widget.git",
        "http://github.com/acme/widget.git",
    ],
)
def test_credentials_leave_other_urls_untouched(url: str) -> None:
    assert GitCredentials(token="s3cr3t").authenticate(url) == url


def test_credentials_without_token() -> None:
    creds = GitCredentials()
    assert creds.authenticate("https://github.com/acme/widget.git") == "https://github.com/acme/widget.git"
    assert creds.secrets == ()


def test_credentials_custom_host() -> None:
    creds = GitCredentials(token="t", host="git.internal")
    assert creds.authenticate("https://git.internal/acme/widget") == "https://t@git.internal/acme/widget"


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


async def test_executor_returns_stdout(remote) -> None:
    out = await CommandExecutor().git("--version")
    assert out.startswith("git version")


async def test_executor_raises_on_nonzero_exit(tmp_path: Path, remote) -> None:
    with pytest.raises(CommandFailedError) as exc_info:
        await CommandExecutor().git("rev-parse", "--git-dir", cwd=tmp_path)
    exc = exc_info.value
    assert exc.returncode != 0
    assert exc.argv == ["git", "rev-parse", "--git-dir"]
    assert "not a git repository" in exc.stderr


async def test_executor_redacts_secrets(tmp_path: Path, remote) -> None:
    missing = tmp_path / "token-abc123" / "nowhere"
    with pytest.raises(CommandFailedError) as exc_info:
        await CommandExecutor().git("-C", str(missing), "status", secrets=("abc123",))
    exc = exc_info.value
    assert "abc123" not in " ".join(exc.argv)
    assert "abc123" not in exc.stderr
    assert "abc123" not in str(exc)
    assert "token-***" in exc.stderr


# ---------------------------------------------------------------------------
# GitRepo against a local bare remote
# ---------------------------------------------------------------------------


@pytest.fixture
async def cloned(tmp_path: Path, remote) -> GitRepo:
    work = tmp_path / "work"
    work.mkdir()
    return await clone(CommandExecutor(), remote.url, work / "widget")


async def test_clone_and_inspect(cloned: GitRepo) -> None:
    assert await cloned.is_valid()
    assert await cloned.current_branch() == "main"
    assert await cloned.default_branch() == "main"
    assert await cloned.local_branches() == ["main"]
    assert await cloned.remote_branches() == ["feature", "main"]


async def test_is_valid_false_for_plain_directory(tmp_path: Path, remote) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()
    assert not await GitRepo(CommandExecutor(), plain).is_valid()
    assert not await GitRepo(CommandExecutor(), tmp_path / "missing").is_valid()


async def test_checkout_branch_remote_only_creates_tracking_branch(cloned: GitRepo) -> None:
    assert await cloned.checkout_branch("feature") is BranchResolution.TRACKING
    assert await cloned.current_branch() == "feature"
    upstream = await cloned.git("rev-parse", "--abbrev-ref", "feature@{upstream}")
    assert upstream.strip() == "origin/feature"


async def test_checkout_branch_prefers_local(cloned: GitRepo) -> None:
    await cloned.checkout_branch("feature")
    await cloned.checkout("main")
    assert await cloned.checkout_branch("feature") is BranchResolution.LOCAL
    assert await cloned.current_branch() == "feature"


async def test_checkout_branch_creates_from_head(cloned: GitRepo) -> None:
    assert await cloned.checkout_branch("brand-new") is BranchResolution.CREATED
    assert await cloned.current_branch() == "brand-new"
    assert "brand-new" in await cloned.local_branches()
    assert "brand-new" not in await cloned.remote_branches()


async def test_clone_missing_branch_fails(tmp_path: Path, remote) -> None:
    with pytest.raises(CommandFailedError) as exc_info:
        await clone(CommandExecutor(), remote.url, tmp_path / "widget", branch="does-not-exist")
    assert "not found in upstream" in exc_info.value.stderr
    assert not (tmp_path / "widget").exists()


async def test_clone_url_starting_with_dash_is_not_an_option(remote_factory) -> None:
    dashed = remote_factory(name="-widget")
    parent = dashed.bare.parent

    repo = await clone(CommandExecutor(), dashed.bare.name, parent / "copy")

    assert await repo.is_valid()
    assert (parent / "copy" / "README.md").read_text() == "-widget\n"
