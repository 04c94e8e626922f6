"""Registry clients for MCP server registrations."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from typing import Iterable, Mapping, Protocol, Sequence, runtime_checkable

from .errors import RegistrationFailedError, RegistryUnreachableError
from .models import RegistryEntry

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

_LIST_LINE = re.compile(r"^(?P<name>[A-Za-z0-9_.-]+): (?P<invocation>.+?)(?: - [✓✗!?].*)?$")


@runtime_checkable
class RegistryClient(Protocol):
    """Protocol implemented by registry backends."""

    def list(self) -> list[RegistryEntry]:
        """Return every registered server; raises RegistryUnreachableError."""

    def add(self, name: str, command: str, args: Sequence[str] = ()) -> None:
        """Register a server; raises RegistrationFailedError."""

    def remove(self, name: str) -> None:
        """Drop a server; raises RegistrationFailedError."""


def parse_list_output(output: str) -> list[RegistryEntry]:
    """Parse ``claude mcp list`` lines of the form ``name: command args - status``."""

    entries: dict[str, RegistryEntry] = {}
    for line in output.splitlines():
        match = _LIST_LINE.match(line.strip())
        if match is None:
            continue
        try:
            parts = shlex.split(match.group("invocation"))
        except ValueError:
            parts = match.group("invocation").split()
        if not parts:
            continue
        name = match.group("name")
        entries[name] = RegistryEntry(
            name=name,
            command=parts[0],
            args=tuple(parts[1:]),
            raw=match.group("invocation"),
        )
    return list(entries.values())


class ClaudeCliRegistry:
    """Registry backend that shells out to ``claude mcp``."""

    def __init__(self, executable: str = "claude", *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._executable = executable
        self._timeout = timeout

    def list(self) -> list[RegistryEntry]:
        try:
            result = self._run(["list"])
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RegistryUnreachableError(f"Could not query registry via '{self._executable}': {exc}") from exc
        if result.returncode != 0:
            raise RegistryUnreachableError(
                f"'{self._executable} mcp list' exited with {result.returncode}: {result.stderr.strip()}"
            )
        return parse_list_output(result.stdout)

    def add(self, name: str, command: str, args: Sequence[str] = ()) -> None:
        cmd = ["add", name, command]
        if any(arg.startswith("-") for arg in args):
            cmd.append("--")
        cmd.extend(args)
        self._mutate(cmd, name)

    def remove(self, name: str) -> None:
        self._mutate(["remove", name], name)

    def _mutate(self, cmd: list[str], name: str) -> None:
        try:
            result = self._run(cmd)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RegistrationFailedError(f"'{cmd[0]}' for '{name}' did not complete: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise RegistrationFailedError(f"'{cmd[0]}' for '{name}' exited with {result.returncode}: {detail}")
        LOG.debug("Registry command succeeded", extra={"server": name, "action": cmd[0]})

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [self._executable, "mcp", *cmd],
            capture_output=True,
            text=True,
            timeout=self._timeout,
            check=False,
        )


class InMemoryRegistry:
    """Dict-backed registry used for dry runs and tests."""

    def __init__(
        self,
        entries: Iterable[RegistryEntry] = (),
        *,
        failing: Iterable[str] = (),
        reachable: bool = True,
    ) -> None:
        self._entries: dict[str, RegistryEntry] = {entry.name: entry for entry in entries}
        self._failing = set(failing)
        self.reachable = reachable
        self.calls: list[tuple[str, str]] = []

    @classmethod
    def snapshot_of(cls, source: RegistryClient) -> InMemoryRegistry:
        """Copy the current state of another registry."""

        return cls(source.list())

    @property
    def entries(self) -> Mapping[str, RegistryEntry]:
        return dict(self._entries)

    def list(self) -> list[RegistryEntry]:
        self.calls.append(("list", ""))
        if not self.reachable:
            raise RegistryUnreachableError("In-memory registry marked unreachable")
        return list(self._entries.values())

    def add(self, name: str, command: str, args: Sequence[str] = ()) -> None:
        self.calls.append(("add", name))
        if name in self._failing:
            raise RegistrationFailedError(f"Simulated failure adding '{name}'")
        if name in self._entries:
            raise RegistrationFailedError(f"MCP server '{name}' already exists")
        self._entries[name] = RegistryEntry(name=name, command=command, args=tuple(args))

    def remove(self, name: str) -> None:
        self.calls.append(("remove", name))
        if name in self._failing:
            raise RegistrationFailedError(f"Simulated failure removing '{name}'")
        if self._entries.pop(name, None) is None:
            raise RegistrationFailedError(f"No MCP server named '{name}'")


__all__ = [
    "ClaudeCliRegistry",
    "DEFAULT_TIMEOUT",
    "InMemoryRegistry",
    "RegistryClient",
    "parse_list_output",
]
