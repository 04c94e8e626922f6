"""GitHub token storage inside the registry's JSON document."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Protocol, Sequence

from .errors import CredentialStoreMissingError, CredentialUpdateError

LOG = logging.getLogger(__name__)

TOKEN_KEY = "GITHUB_PERSONAL_ACCESS_TOKEN"
SERVER_NAME = "github"

_JQ_FILTER = f"""
if .mcpServers.{SERVER_NAME} then
  .mcpServers.{SERVER_NAME}.env.{TOKEN_KEY} = $token
else . end |
if .projects[$project].mcpServers.{SERVER_NAME} then
  .projects[$project].mcpServers.{SERVER_NAME}.env.{TOKEN_KEY} = $token
else . end
"""


class TokenPatcher(Protocol):
    """Strategy that writes a token into the document in place."""

    name: str

    def available(self) -> bool: ...

    def patch(self, path: Path, token: str, project_path: str) -> tuple[str, ...]:
        """Patch ``path``; return the locations that now hold the token."""


def token_locations(document: Any, project_path: str) -> tuple[str, ...]:
    """Locations in ``document`` that carry a github server entry."""

    locations: list[str] = []
    if not isinstance(document, dict):
        return ()
    servers = document.get("mcpServers")
    if isinstance(servers, dict) and isinstance(servers.get(SERVER_NAME), dict):
        locations.append("global")
    projects = document.get("projects")
    if isinstance(projects, dict):
        project = projects.get(project_path)
        if isinstance(project, dict):
            project_servers = project.get("mcpServers")
            if isinstance(project_servers, dict) and isinstance(project_servers.get(SERVER_NAME), dict):
                locations.append("project")
    return tuple(locations)


def read_token(path: Path) -> str | None:
    """Return the globally stored token, if any."""

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if "global" not in token_locations(document, ""):
        return None
    env = document["mcpServers"][SERVER_NAME].get("env")
    if isinstance(env, dict):
        token = env.get(TOKEN_KEY)
        if isinstance(token, str) and token:
            return token
    return None


def mask_token(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else "****"


class JsonDocumentPatcher:
    """Read-modify-write of the whole document with an atomic rename."""

    name = "json"

    def available(self) -> bool:
        return True

    def patch(self, path: Path, token: str, project_path: str) -> tuple[str, ...]:
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CredentialUpdateError(f"Could not read {path}: {exc}") from exc
        locations = token_locations(document, project_path)
        if "global" in locations:
            _set_token(document["mcpServers"][SERVER_NAME], token)
        if "project" in locations:
            _set_token(document["projects"][project_path]["mcpServers"][SERVER_NAME], token)
        if locations:
            _atomic_write(path, json.dumps(document, indent=2) + "\n")
        return locations


class JqPatcher:
    """Fallback that delegates the edit to the ``jq`` tool."""

    name = "jq"

    def __init__(self, executable: str = "jq", *, timeout: float = 5.0) -> None:
        self._executable = executable
        self._timeout = timeout

    def available(self) -> bool:
        return shutil.which(self._executable) is not None

    def patch(self, path: Path, token: str, project_path: str) -> tuple[str, ...]:
        try:
            result = subprocess.run(
                [
                    self._executable,
                    "--arg",
                    "token",
                    token,
                    "--arg",
                    "project",
                    project_path,
                    _JQ_FILTER,
                    str(path),
                ],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CredentialUpdateError(f"jq did not complete: {exc}") from exc
        if result.returncode != 0:
            raise CredentialUpdateError(f"jq exited with {result.returncode}: {result.stderr.strip()}")
        try:
            document = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise CredentialUpdateError(f"jq produced invalid JSON: {exc}") from exc
        locations = token_locations(document, project_path)
        if locations:
            _atomic_write(path, result.stdout)
        return locations


class CredentialStore:
    """Updates the github token held in the registry document."""

    def __init__(self, path: Path, patchers: Sequence[TokenPatcher] | None = None) -> None:
        self._path = path
        self._patchers: tuple[TokenPatcher, ...] = tuple(patchers or (JsonDocumentPatcher(), JqPatcher()))

    @property
    def path(self) -> Path:
        return self._path

    def update_github_token(self, token: str, project_path: str) -> tuple[str, ...]:
        """Store ``token`` for the global and project github entries that exist.

        Raises :class:`CredentialStoreMissingError` when the document or every
        patcher is unavailable, and :class:`CredentialUpdateError` when every
        available patcher failed.
        """

        if not self._path.is_file():
            raise CredentialStoreMissingError(f"Registry document not found at {self._path}")
        patchers = [patcher for patcher in self._patchers if patcher.available()]
        if not patchers:
            raise CredentialStoreMissingError("No credential patcher is available")
        shutil.copy2(self._path, self._path.with_name(self._path.name + ".backup"))
        errors: list[str] = []
        for patcher in patchers:
            try:
                locations = patcher.patch(self._path, token, project_path)
            except CredentialUpdateError as exc:
                LOG.warning("Credential patcher failed", extra={"patcher": patcher.name, "error": str(exc)})
                errors.append(f"{patcher.name}: {exc}")
                continue
            if not locations:
                raise CredentialStoreMissingError(f"No github server entry in {self._path}")
            LOG.info(
                "Updated github token",
                extra={"patcher": patcher.name, "locations": locations, "token": mask_token(token)},
            )
            return locations
        raise CredentialUpdateError("; ".join(errors))


def _set_token(server: dict[str, Any], token: str) -> None:
    env = server.get("env")
    if not isinstance(env, dict):
        env = {}
        server["env"] = env
    env[TOKEN_KEY] = token


def _atomic_write(path: Path, content: str) -> None:
    temp_path = path.with_name(path.name + ".tmp")
    try:
        temp_path.write_text(content, encoding="utf-8")
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


__all__ = [
    "CredentialStore",
    "JqPatcher",
    "JsonDocumentPatcher",
    "TOKEN_KEY",
    "TokenPatcher",
    "mask_token",
    "read_token",
    "token_locations",
]
