"""Async external command execution.

A pure execution primitive: run a process, capture its output, raise
``CommandFailedError`` on non-zero exit.  No retry logic lives here.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from repodeck.runtime.errors import CommandFailedError

_REDACTED = "***"


class CommandExecutor:
    """Runs external processes (mainly ``git``) and returns their stdout.

    ``GIT_TERMINAL_PROMPT=0`` is always set so a missing credential fails
    the command instead of blocking on an interactive prompt.
    """

    def __init__(self, git_binary: str = "git", env: dict[str, str] | None = None) -> None:
        self.git_binary = git_binary
        self._env = {**os.environ, **(env or {}), "GIT_TERMINAL_PROMPT": "0"}

    async def run(
        self,
        argv: Sequence[str],
        cwd: str | Path | None = None,
        *,
        secrets: Sequence[str] = (),
    ) -> str:
        """Run *argv* in *cwd* and return its decoded stdout.

        Any value in *secrets* is replaced with ``***`` in the logged command
        line and in the raised error.
        """
        shown = _redact_argv(argv, secrets)
        logger.debug("exec: {} (cwd={})", " ".join(shown), cwd or ".")

        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._env,
        )
        stdout, stderr = await proc.communicate()
        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")

        if proc.returncode != 0:
            raise CommandFailedError(
                shown,
                proc.returncode if proc.returncode is not None else -1,
                _redact_text(err, secrets),
                _redact_text(out, secrets),
            )
        return out

    async def git(self, *args: str, cwd: str | Path | None = None, secrets: Sequence[str] = ()) -> str:
        """Run ``git <args>``."""
        return await self.run([self.git_binary, *args], cwd, secrets=secrets)


def _redact_argv(argv: Sequence[str], secrets: Sequence[str]) -> list[str]:
    return [_redact_text(arg, secrets) for arg in argv]


def _redact_text(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text
