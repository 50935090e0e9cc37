"""Configuration profiles that can be materialized into a working copy.

A profile is a named blob of configuration text.  The settings store that
owns profiles is an external collaborator; the runtime only needs to look
one up by name.  ``DirectoryProfileSource`` serves them from
``{profiles_root}/{name}.json``.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

_PROFILE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@runtime_checkable
class ProfileSource(Protocol):
    def get(self, name: str) -> str | None:
        """Profile content, or ``None`` if no profile has that name."""
        ...


class DirectoryProfileSource:
    def __init__(self, root: Path, suffix: str = ".json") -> None:
        self.root = root
        self.suffix = suffix

    def get(self, name: str) -> str | None:
        if not _PROFILE_NAME.match(name):
            return None
        path = self.root / f"{name}{self.suffix}"
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None


def write_atomic(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
