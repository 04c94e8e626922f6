"""Registry synchronizer converging MCP registrations on the project settings."""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .config import AppConfig
from .connection_config import (
    CONFIG_FILENAME,
    DEFAULT_CONNECTION_ID,
    build_connection_config,
    config_path_for,
    write_connection_config,
)
from .credentials import SERVER_NAME as GITHUB_SERVER
from .credentials import CredentialStore
from .errors import (
    CredentialStoreMissingError,
    CredentialUpdateError,
    ExecutableUnavailableError,
    ProjectIdentifierError,
    RegistryError,
    RegistryUnreachableError,
)
from .models import EnvRecord, OutcomeStatus, RegistryEntry, Scope, ServerSpec, SyncReport
from .probe import ExecutableProbe, SystemProbe, first_available
from .project import derive_project_identifier
from .registry import RegistryClient

LOG = logging.getLogger(__name__)

FILESYSTEM_PACKAGE = "@modelcontextprotocol/server-filesystem"


class SyncPhase(str, Enum):
    """Phases of one synchronization run, in order."""

    START = "start"
    GLOBAL_PASS = "global_pass"
    PROJECT_CLEANUP = "project_cleanup"
    PROJECT_PASS = "project_pass"
    CONFIG_FILE_WRITE = "config_file_write"
    DONE = "done"
    ABORTED = "aborted"


PhaseListener = Callable[[SyncPhase, SyncReport], None]


def default_global_servers(mcp_dir: Path) -> tuple[ServerSpec, ...]:
    """Servers shared across every project."""

    context7 = mcp_dir / "context7" / "dist" / "index.js"
    fetch = mcp_dir / "fetch-mcp" / "dist" / "index.js"
    return (
        ServerSpec(name=GITHUB_SERVER, command="npx", args=("@modelcontextprotocol/server-github",)),
        ServerSpec(name="memory", command="npx", args=("@modelcontextprotocol/server-memory",)),
        ServerSpec(name="context7", command="node", args=(str(context7),), requires_path=context7),
        ServerSpec(name="playwright", command="npx", args=("@playwright/mcp",), requires_command="npx"),
        ServerSpec(name="fetch", command="node", args=(str(fetch),), requires_path=fetch),
    )


def database_binary_candidates(mcp_dir: Path) -> tuple[Path, ...]:
    """Locations a built db-mcp-server may live at, in preference order."""

    base = mcp_dir / "db-mcp-server"
    return (base / "bin" / "server", base / "db-mcp-server")


def project_entry_names(project_id: str) -> tuple[str, str]:
    return f"filesystem-{project_id}", f"database-{project_id}"


class RegistrySynchronizer:
    """Reconciles global and project-scoped registrations plus the connection config.

    A run assumes it is the only writer touching the registry for this
    project; no locking is attempted.
    """

    def __init__(
        self,
        registry: RegistryClient,
        *,
        project_root: Path,
        mcp_dir: Path,
        global_servers: Sequence[ServerSpec] | None = None,
        probe: ExecutableProbe | None = None,
        credentials: CredentialStore | None = None,
        connection_id: str = DEFAULT_CONNECTION_ID,
        clock: Callable[[], float] = time.time,
        write_config: bool = True,
    ) -> None:
        self._registry = registry
        self._project_root = project_root
        self._mcp_dir = mcp_dir
        self._global_servers = tuple(global_servers if global_servers is not None else default_global_servers(mcp_dir))
        self._probe = probe or SystemProbe()
        self._credentials = credentials
        self._connection_id = connection_id
        self._clock = clock
        self._write_config = write_config
        self._listeners: set[PhaseListener] = set()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        registry: RegistryClient,
        *,
        project_root: Path,
        probe: ExecutableProbe | None = None,
        credentials: CredentialStore | None = None,
        write_config: bool = True,
    ) -> RegistrySynchronizer:
        """Build a synchronizer honouring the enabled-server flags in ``config``."""

        servers = tuple(
            spec for spec in default_global_servers(config.mcp_dir) if config.is_server_enabled(spec.name)
        )
        return cls(
            registry,
            project_root=project_root,
            mcp_dir=config.mcp_dir,
            global_servers=servers,
            probe=probe,
            credentials=credentials,
            connection_id=config.connection_id,
            write_config=write_config,
        )

    @property
    def config_path(self) -> Path:
        return config_path_for(self._project_root.absolute())

    def subscribe(self, listener: PhaseListener) -> Callable[[], None]:
        """Subscribe to phase transitions; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def project_identifier(self) -> str:
        try:
            root = self._project_root.resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise ProjectIdentifierError(f"Cannot resolve project directory {self._project_root}: {exc}") from exc
        return derive_project_identifier(root.name, clock=self._clock)

    def reconcile(self, record: EnvRecord, *, github_token: str | None = None) -> SyncReport:
        """Run every phase once and return the summary."""

        report = SyncReport(config_path=self.config_path)
        report.warnings.extend(record.warnings)
        self._enter(SyncPhase.START, report)
        try:
            self.global_pass(report, github_token=github_token)
            project_id = self.project_identifier()
            report.project_id = project_id
            before = self.project_cleanup(report, project_id)
            self.project_pass(report, record, project_id, before)
            self.write_config_file(report, record)
        except (RegistryUnreachableError, ProjectIdentifierError) as exc:
            LOG.error("Synchronization aborted", extra={"phase": report.phase, "error": str(exc)})
            report.aborted = f"{report.phase}: {exc}"
            self._enter(SyncPhase.ABORTED, report)
            return report
        self._enter(SyncPhase.DONE, report)
        return report

    def global_pass(self, report: SyncReport, *, github_token: str | None = None) -> None:
        """Add missing global servers; existing ones keep their invocation."""

        self._enter(SyncPhase.GLOBAL_PASS, report)
        existing = {entry.name for entry in self._registry.list()}
        for spec in self._global_servers:
            if spec.name in existing:
                report.record(spec.name, OutcomeStatus.UNCHANGED, "already registered")
            elif not self._add(report, spec, OutcomeStatus.ADDED):
                continue
            if spec.name == GITHUB_SERVER and github_token:
                self._update_credentials(report, github_token)

    def project_cleanup(self, report: SyncReport, project_id: str) -> dict[str, RegistryEntry]:
        """Remove this project's entries; returns what was registered beforehand."""

        self._enter(SyncPhase.PROJECT_CLEANUP, report)
        names = project_entry_names(project_id)
        try:
            current = self._registry.list()
        except RegistryError as exc:
            LOG.warning("Could not list registry before cleanup", extra={"error": str(exc)})
            report.warnings.append(f"Cleanup skipped: {exc}")
            return {}
        stale = {
            entry.name: entry for entry in current if entry.scope is Scope.PROJECT and entry.name in names
        }
        for name in stale:
            try:
                self._registry.remove(name)
            except RegistryError as exc:
                LOG.warning("Failed to remove stale entry", extra={"server": name, "error": str(exc)})
                report.record(name, OutcomeStatus.FAILED, f"could not remove stale entry: {exc}")
            else:
                LOG.debug("Removed stale entry", extra={"server": name})
        return stale

    def project_pass(
        self,
        report: SyncReport,
        record: EnvRecord,
        project_id: str,
        before: Mapping[str, RegistryEntry],
    ) -> None:
        """Register the filesystem server and, when configured, the database server."""

        self._enter(SyncPhase.PROJECT_PASS, report)
        blocked = set(report.failed)
        filesystem_name, database_name = project_entry_names(project_id)
        project_path = str(self._project_root.absolute())
        desired: list[ServerSpec] = [
            ServerSpec(name=filesystem_name, command="npx", args=(FILESYSTEM_PACKAGE, project_path))
        ]
        if record.has_database:
            binary = self._database_binary()
            if binary is None:
                report.record(database_name, OutcomeStatus.SKIPPED, "database server binary not found or not executable")
            else:
                desired.append(
                    ServerSpec(
                        name=database_name,
                        command=str(binary),
                        args=("-t", "stdio", "-c", str(self.config_path)),
                    )
                )
        else:
            report.notes.append("No DB_DATABASE configured; skipped project database registration")
        for spec in desired:
            if spec.name in blocked:
                continue
            previous = before.get(spec.name)
            if previous is None:
                status = OutcomeStatus.ADDED
            elif previous.runs(spec.invocation):
                status = OutcomeStatus.UNCHANGED
            else:
                status = OutcomeStatus.UPDATED
            self._add(report, spec, status)
        registered = {spec.name for spec in desired}
        reported = {outcome.name for outcome in report.outcomes}
        for name in before:
            if name not in registered and name not in reported:
                report.record(name, OutcomeStatus.REMOVED)

    def write_config_file(self, report: SyncReport, record: EnvRecord) -> None:
        """Overwrite the connection config, or leave it alone without a database."""

        self._enter(SyncPhase.CONFIG_FILE_WRITE, report)
        if not record.has_database:
            report.notes.append(f"{CONFIG_FILENAME} left untouched (no DB_DATABASE)")
            return
        document = build_connection_config(record, connection_id=self._connection_id)
        if not self._write_config:
            report.notes.append(f"Would write {self.config_path}")
            return
        try:
            write_connection_config(self.config_path, document)
        except OSError as exc:
            LOG.warning("Failed to write connection config", extra={"path": str(self.config_path), "error": str(exc)})
            report.record(CONFIG_FILENAME, OutcomeStatus.FAILED, str(exc))
            return
        report.config_written = True

    def _add(self, report: SyncReport, spec: ServerSpec, status: OutcomeStatus) -> bool:
        try:
            self._require(spec)
        except ExecutableUnavailableError as exc:
            LOG.warning("Skipping server", extra={"server": spec.name, "error": str(exc)})
            report.record(spec.name, OutcomeStatus.SKIPPED, str(exc))
            return False
        try:
            self._registry.add(spec.name, spec.command, spec.args)
        except RegistryError as exc:
            LOG.warning("Failed to register server", extra={"server": spec.name, "error": str(exc)})
            report.record(spec.name, OutcomeStatus.FAILED, str(exc))
            return False
        LOG.info("Registered server", extra={"server": spec.name, "status": status.value})
        report.record(spec.name, status)
        return True

    def _require(self, spec: ServerSpec) -> None:
        if spec.requires_path is not None and not self._probe.path_available(spec.requires_path):
            raise ExecutableUnavailableError(f"{spec.requires_path} not found")
        if spec.requires_command is not None and not self._probe.command_available(spec.requires_command):
            raise ExecutableUnavailableError(f"'{spec.requires_command}' is not on PATH")

    def _database_binary(self) -> Path | None:
        binary = first_available(self._probe, database_binary_candidates(self._mcp_dir))
        if binary is None or not self._probe.is_executable(binary):
            return None
        return binary

    def _update_credentials(self, report: SyncReport, token: str) -> None:
        if self._credentials is None:
            report.credentials = OutcomeStatus.SKIPPED
            report.warnings.append("GitHub token supplied but no credential store is configured")
            return
        project_path = str(self._project_root.absolute())
        try:
            self._credentials.update_github_token(token, project_path)
        except CredentialStoreMissingError as exc:
            report.credentials = OutcomeStatus.SKIPPED
            report.warnings.append(f"GitHub token not stored: {exc}")
        except (CredentialUpdateError, OSError) as exc:
            report.credentials = OutcomeStatus.FAILED
            report.warnings.append(f"GitHub token update failed: {exc}")
        else:
            report.credentials = OutcomeStatus.UPDATED

    def _enter(self, phase: SyncPhase, report: SyncReport) -> None:
        report.phase = phase.value
        LOG.debug("Entering phase", extra={"phase": phase.value})
        for listener in tuple(self._listeners):
            listener(phase, report)


__all__ = [
    "FILESYSTEM_PACKAGE",
    "PhaseListener",
    "RegistrySynchronizer",
    "SyncPhase",
    "database_binary_candidates",
    "default_global_servers",
    "project_entry_names",
]
