"""Shared dataclasses used across the extractor and synchronizer modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

PROJECT_KINDS = ("filesystem", "database")


class ConnectionType(str, Enum):
    """Database drivers understood by the connection config writer."""

    MYSQL = "mysql"
    POSTGRES = "postgres"
    SQLITE = "sqlite"


class Scope(str, Enum):
    """Where a registry entry applies."""

    GLOBAL = "global"
    PROJECT = "project"


@dataclass(frozen=True, slots=True)
class EnvRecord:
    """Normalized database settings derived from a dotenv file."""

    connection_type: ConnectionType = ConnectionType.MYSQL
    host: str = "127.0.0.1"
    port: int = 3306
    database_name: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    database_path: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def masked_password(self) -> str:
        """Password safe for display: a short prefix at most."""

        if not self.password:
            return ""
        if len(self.password) <= 4:
            return "****"
        return f"{self.password[:2]}****"

    @property
    def has_database(self) -> bool:
        return bool(self.database_name)


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One named registration as reported by the registry."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    raw: str = field(default="", compare=False)

    @property
    def scope(self) -> Scope:
        kind, sep, suffix = self.name.partition("-")
        if sep and suffix and kind in PROJECT_KINDS:
            return Scope.PROJECT
        return Scope.GLOBAL

    @property
    def invocation(self) -> tuple[str, ...]:
        return (self.command, *self.args)

    def runs(self, invocation: Sequence[str]) -> bool:
        """Whether this entry launches ``invocation``.

        Listings print arguments unquoted, so a path containing spaces only
        survives in ``raw``.
        """

        if self.invocation == tuple(invocation):
            return True
        return bool(self.raw) and self.raw == " ".join(invocation)


@dataclass(frozen=True, slots=True)
class ServerSpec:
    """Desired registration plus the prerequisites it needs on disk."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    requires_path: Path | None = None
    requires_command: str | None = None

    @property
    def invocation(self) -> tuple[str, ...]:
        return (self.command, *self.args)


class OutcomeStatus(str, Enum):
    """Result of reconciling one registration."""

    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RegistrationOutcome:
    name: str
    status: OutcomeStatus
    detail: str = ""


@dataclass(slots=True)
class SyncReport:
    """Summary of a synchronization run, filled in phase by phase."""

    project_id: str | None = None
    outcomes: list[RegistrationOutcome] = field(default_factory=list)
    credentials: OutcomeStatus | None = None
    config_written: bool = False
    config_path: Path | None = None
    phase: str = "start"
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    aborted: str | None = None

    def record(self, name: str, status: OutcomeStatus, detail: str = "") -> None:
        self.outcomes.append(RegistrationOutcome(name=name, status=status, detail=detail))
        if status in (OutcomeStatus.FAILED, OutcomeStatus.SKIPPED) and detail:
            self.warnings.append(f"{name}: {detail}")

    def names(self, status: OutcomeStatus) -> list[str]:
        return [outcome.name for outcome in self.outcomes if outcome.status is status]

    @property
    def added(self) -> list[str]:
        return self.names(OutcomeStatus.ADDED)

    @property
    def updated(self) -> list[str]:
        return self.names(OutcomeStatus.UPDATED)

    @property
    def unchanged(self) -> list[str]:
        return self.names(OutcomeStatus.UNCHANGED)

    @property
    def removed(self) -> list[str]:
        return self.names(OutcomeStatus.REMOVED)

    @property
    def skipped(self) -> list[str]:
        return self.names(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> list[str]:
        return self.names(OutcomeStatus.FAILED)

    @property
    def ok(self) -> bool:
        """True when the run finished without aborting or failing an item."""

        return self.aborted is None and not self.failed and self.credentials is not OutcomeStatus.FAILED


__all__ = [
    "ConnectionType",
    "EnvRecord",
    "OutcomeStatus",
    "PROJECT_KINDS",
    "RegistrationOutcome",
    "RegistryEntry",
    "Scope",
    "ServerSpec",
    "SyncReport",
]
