"""Command line entry point for mcpsync."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from . import config as config_module
from .config import AppConfig, load_config, save_config
from .connection_config import config_path_for, load_connection_config
from .credentials import CredentialStore, mask_token, read_token
from .envfile import extract_env_record
from .errors import ConfigError, RegistryUnreachableError
from .models import EnvRecord, OutcomeStatus, SyncReport
from .probe import SystemProbe, first_available
from .project import detect_project
from .registry import ClaudeCliRegistry, InMemoryRegistry, RegistryClient
from .sync import RegistrySynchronizer, SyncPhase, database_binary_candidates

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_ABORTED = 2

_STATUS_STYLES = {
    OutcomeStatus.ADDED: "green",
    OutcomeStatus.UPDATED: "cyan",
    OutcomeStatus.UNCHANGED: "dim",
    OutcomeStatus.REMOVED: "yellow",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.FAILED: "red",
}

_PHASE_LABELS = {
    SyncPhase.GLOBAL_PASS: "Setting up global MCP servers...",
    SyncPhase.PROJECT_CLEANUP: "Cleaning up existing project-specific MCP servers...",
    SyncPhase.PROJECT_PASS: "Setting up project-specific MCP servers...",
    SyncPhase.CONFIG_FILE_WRITE: "Writing database configuration...",
}


def resolve_github_token(explicit: str | None, claude_config: Path) -> str | None:
    """Pick the token from the flag, then ``GITHUB_TOKEN``, then the stored config."""

    if explicit:
        return explicit
    from_env = os.environ.get("GITHUB_TOKEN")
    if from_env:
        return from_env
    return read_token(claude_config)


def render_record(console: Console, record: EnvRecord, env_file: Path) -> None:
    table = Table(title=f"Database settings from {escape(str(env_file))}", show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    table.add_row("connection", record.connection_type.value)
    if record.database_path is not None:
        table.add_row("database path", escape(record.database_path))
    else:
        table.add_row("host", escape(f"{record.host}:{record.port}"))
    table.add_row("database", escape(record.database_name) or "[dim](not set)[/dim]")
    table.add_row("username", escape(record.username))
    table.add_row("password", record.masked_password)
    console.print(table)


def render_report(console: Console, report: SyncReport) -> None:
    table = Table(title=f"MCP servers (project id: {report.project_id or '-'})")
    table.add_column("server")
    table.add_column("status")
    table.add_column("detail")
    for outcome in report.outcomes:
        style = _STATUS_STYLES[outcome.status]
        table.add_row(outcome.name, f"[{style}]{outcome.status.value}[/{style}]", escape(outcome.detail))
    console.print(table)
    if report.credentials is not None:
        console.print(f"GitHub token: {report.credentials.value}")
    if report.config_written:
        console.print(f"[green]Database configuration written:[/green] {escape(str(report.config_path))}")
    for note in report.notes:
        console.print(f"[blue]note:[/blue] {escape(note)}")
    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
    if report.aborted:
        console.print(f"[red]Aborted:[/red] {escape(report.aborted)}")


def cmd_sync(args: argparse.Namespace, config: AppConfig, console: Console) -> int:
    project_root = Path(args.project).absolute()
    env_file = Path(args.env_file) if args.env_file else project_root / config.env_file
    try:
        record = extract_env_record(env_file, project_root)
    except ConfigError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return EXIT_ABORTED
    render_record(console, record, env_file)

    if args.registry_timeout is not None:
        config = config.with_registry(timeout_seconds=args.registry_timeout)
    registry: RegistryClient = ClaudeCliRegistry(
        config.registry.command, timeout=config.registry.timeout_seconds
    )
    credentials: CredentialStore | None = CredentialStore(config.claude_config)
    if args.dry_run:
        try:
            registry = InMemoryRegistry.snapshot_of(registry)
        except RegistryUnreachableError as exc:
            console.print(f"[red]error:[/red] {escape(str(exc))}")
            return EXIT_ABORTED
        credentials = None

    token = resolve_github_token(args.github_token, config.claude_config)
    if token:
        LOG.info("Using GitHub token", extra={"token": mask_token(token)})

    synchronizer = RegistrySynchronizer.from_config(
        config,
        registry,
        project_root=project_root,
        credentials=credentials,
        write_config=not args.dry_run,
    )
    synchronizer.subscribe(lambda phase, _report: _print_phase(console, phase))
    report = synchronizer.reconcile(record, github_token=token)
    render_report(console, report)
    if report.aborted:
        return EXIT_ABORTED
    return EXIT_OK if report.ok else EXIT_PARTIAL


def cmd_check(args: argparse.Namespace, config: AppConfig, console: Console) -> int:
    project_root = Path(args.project).absolute()
    info = detect_project(project_root)
    probe = SystemProbe()
    issues = 0

    def _row(ok: bool, label: str, *, fatal: bool = True) -> None:
        nonlocal issues
        if ok:
            console.print(f"[green][PASS][/green] {label}")
        elif fatal:
            issues += 1
            console.print(f"[red][FAIL][/red] {label}")
        else:
            console.print(f"[yellow][WARN][/yellow] {label}")

    _row(info.is_laravel, f"Laravel project ({info.framework_version or 'not detected'})")
    _row(info.has_env, ".env file exists")
    if info.has_env:
        try:
            record = extract_env_record(project_root / config.env_file, project_root)
        except ConfigError as exc:
            _row(False, str(exc))
        else:
            _row(record.has_database, "DB_DATABASE configured", fatal=False)
    for command in (config.registry.command, "node", "npx", "git"):
        _row(probe.command_available(command), f"'{command}' on PATH")
    binary = first_available(probe, database_binary_candidates(config.mcp_dir))
    _row(binary is not None and probe.is_executable(binary), "database MCP server binary", fatal=False)
    existing = load_connection_config(config_path_for(project_root))
    if existing is not None and existing.connections:
        _row(True, f"connection config present ({existing.connections[0].type.value})")
    console.print(f"Project identifier: {info.identifier}")
    if issues:
        console.print(f"[red]{issues} issue(s) found[/red]")
        return EXIT_PARTIAL
    return EXIT_OK


def cmd_env(args: argparse.Namespace, config: AppConfig, console: Console) -> int:
    project_root = Path(args.project).absolute()
    env_file = Path(args.env_file) if args.env_file else project_root / config.env_file
    try:
        record = extract_env_record(env_file, project_root)
    except ConfigError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return EXIT_ABORTED
    render_record(console, record, env_file)
    for warning in record.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
    return EXIT_OK


def cmd_config_init(args: argparse.Namespace, config: AppConfig, console: Console) -> int:
    if config_module.CONFIG_FILE.exists() and not args.force:
        console.print(f"{config_module.CONFIG_FILE} already exists; pass --force to overwrite.")
        return EXIT_PARTIAL
    save_config(config)
    console.print(f"Wrote {config_module.CONFIG_FILE}")
    return EXIT_OK


def _print_phase(console: Console, phase: SyncPhase) -> None:
    label = _PHASE_LABELS.get(phase)
    if label:
        console.print(f"[cyan][STEP][/cyan] {label}")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mcpsync", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Register MCP servers and write database-config.json")
    sync.add_argument("--project", default=".", help="Laravel project root")
    sync.add_argument("--env-file", help="Dotenv file (defaults to <project>/.env)")
    sync.add_argument("--github-token", help="GitHub personal access token to store")
    sync.add_argument("--dry-run", action="store_true", help="Plan changes against a copy of the registry")
    sync.add_argument(
        "--registry-timeout",
        type=float,
        help="Seconds to wait for each registry command (overrides the config file)",
    )
    sync.set_defaults(handler=cmd_sync)

    check = sub.add_parser("check", help="Run pre-flight checks")
    check.add_argument("--project", default=".", help="Laravel project root")
    check.set_defaults(handler=cmd_check)

    env = sub.add_parser("env", help="Show the parsed database settings")
    env.add_argument("--project", default=".", help="Laravel project root")
    env.add_argument("--env-file", help="Dotenv file (defaults to <project>/.env)")
    env.set_defaults(handler=cmd_env)

    config = sub.add_parser("config", help="Manage the mcpsync config file")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    init = config_sub.add_parser("init", help="Write the default config file")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    init.set_defaults(handler=cmd_config_init)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, console: Console | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.handler(args, load_config(), console or Console())


if __name__ == "__main__":
    raise SystemExit(main())
