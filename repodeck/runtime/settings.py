"""Service configuration loaded from REPODECK_* environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepodeckSettings(BaseSettings):
    """Repodeck workspace runtime settings.

    All fields are read from environment variables with the ``REPODECK_`` prefix.
    For example, ``REPODECK_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPODECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Infrastructure --------------------------------------------------------
    database_url: str | None = None
    """PostgreSQL connection string (psycopg).  Without it, records live in memory only."""

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Unified root directory for all managed data (working copies, profiles)."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths.

    When set, all paths become ``{data_root}/{data_prefix}/...``.
    """

    # -- Git -------------------------------------------------------------------
    git_binary: str = "git"

    git_token: SecretStr | None = None
    """Access token injected into HTTPS clone URLs for ``git_token_host``."""

    git_token_host: str = "github.com"

    worktree_max_attempts: int = 3

    # -- Workspaces ------------------------------------------------------------
    profile_filename: str = "opencode.json"
    """File name a configuration profile is materialized as inside a working copy."""

    reconcile_on_startup: bool = True
    """Remove directories under the workspaces root that no record references."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000

    # -- Helpers ---------------------------------------------------------------

    @property
    def base_path(self) -> Path:
        base = Path(self.data_root)
        if self.data_prefix:
            base = base / self.data_prefix
        return base

    @property
    def repos_path(self) -> Path:
        """Workspaces root: every ``local_path`` resolves under this directory."""
        return self.base_path / "repos"

    @property
    def profiles_path(self) -> Path:
        return self.base_path / "profiles"

    def resolve_git_token(self) -> str | None:
        if self.git_token is None:
            return None
        return self.git_token.get_secret_value() or None


def get_settings() -> RepodeckSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> RepodeckSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return RepodeckSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
