"""Availability checks for launchers and server binaries."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable, Protocol


class ExecutableProbe(Protocol):
    """Interface used by the synchronizer to look for prerequisites."""

    def path_available(self, path: Path) -> bool: ...

    def is_executable(self, path: Path) -> bool: ...

    def command_available(self, name: str) -> bool: ...


class SystemProbe:
    """Probe backed by the local filesystem and ``PATH``."""

    def path_available(self, path: Path) -> bool:
        return path.is_file()

    def is_executable(self, path: Path) -> bool:
        return path.is_file() and os.access(path, os.X_OK)

    def command_available(self, name: str) -> bool:
        return shutil.which(name) is not None


def first_available(probe: ExecutableProbe, candidates: Iterable[Path]) -> Path | None:
    """Return the first candidate that exists on disk."""

    for candidate in candidates:
        if probe.path_available(candidate):
            return candidate
    return None


__all__ = ["ExecutableProbe", "SystemProbe", "first_available"]
