"""Credential injection for HTTPS clone URLs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GitCredentials:
    """Optional access token for one recognized host.

    Without a token every URL is used as-is (unauthenticated access).
    """

    token: str | None = None
    host: str = "github.com"

    def authenticate(self, url: str) -> str:
        """Return *url* with the token embedded when it targets ``https://{host}``."""
        prefix = f"https://{self.host}"
        if not self.token or not (url == prefix or url.startswith(prefix + "/")):
            return url
        return url.replace("https://", f"https://{self.token}@", 1)

    @property
    def secrets(self) -> tuple[str, ...]:
        """Values that must never appear in logs or error messages."""
        return (self.token,) if self.token else ()
