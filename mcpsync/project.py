"""Laravel project detection and identifier derivation."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

_NON_ALNUM = re.compile(r"[^a-z0-9]")
FRAMEWORK_PACKAGE = "laravel/framework"
FALLBACK_PREFIX = "laravel"


def derive_project_identifier(name: str, *, clock: Callable[[], float] = time.time) -> str:
    """Lower-case ``name`` and keep only ``[a-z0-9]``; never returns an empty string."""

    identifier = _NON_ALNUM.sub("", name.lower())
    if identifier:
        return identifier
    return f"{FALLBACK_PREFIX}{int(clock())}"


@dataclass(frozen=True, slots=True)
class ProjectInfo:
    """What the pre-flight check found in a project directory."""

    root: Path
    has_artisan: bool
    has_composer: bool
    framework_version: str | None
    has_env: bool

    @property
    def is_laravel(self) -> bool:
        return self.has_artisan and self.has_composer and self.framework_version is not None

    @property
    def identifier(self) -> str:
        return derive_project_identifier(self.root.name)


def detect_project(root: Path) -> ProjectInfo:
    """Inspect ``root`` for the files a Laravel checkout carries."""

    composer = root / "composer.json"
    return ProjectInfo(
        root=root,
        has_artisan=(root / "artisan").is_file(),
        has_composer=composer.is_file(),
        framework_version=_framework_version(composer),
        has_env=(root / ".env").is_file(),
    )


def _framework_version(composer: Path) -> str | None:
    try:
        data = json.loads(composer.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    for section in ("require", "require-dev"):
        requirements = data.get(section)
        if isinstance(requirements, dict) and FRAMEWORK_PACKAGE in requirements:
            constraint = str(requirements[FRAMEWORK_PACKAGE])
            return constraint.lstrip("^~>=v ") or constraint
    return None


__all__ = ["FALLBACK_PREFIX", "ProjectInfo", "derive_project_identifier", "detect_project"]
