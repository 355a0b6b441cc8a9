"""Command-line interface for Dockship."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from .cancellation import CancellationToken, install_signal_handlers
from .config import AppConfig, load_config
from .errors import CredentialsError, DeployerError, InputError, Interrupted
from .models import ApplicationSpec, DeploymentTarget, RunContext, RunMode, SourceReference
from .ssh import SSHCredentials
from .utils.logging import configure_logging
from .workflow import DeploymentWorkflow, RunReport

logger = logging.getLogger(__name__)

Ask = Callable[..., str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockship",
        description="Deploy a Dockerized app from a Git repository to a remote Linux server over SSH.",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file overriding defaults.")
    parser.add_argument("--workspace", type=str, default=None, help="Directory for local working trees.")
    parser.add_argument("--repo", help="Git repository HTTPS URL")
    parser.add_argument("--pat", help="Personal access token (prefer DOCKSHIP_PAT or the prompt)")
    parser.add_argument("--branch", help="Branch to deploy (default: main)")
    parser.add_argument("--user", help="Remote SSH username")
    parser.add_argument("--server", help="Remote server IP or hostname")
    parser.add_argument("--port", type=int, default=None, help="SSH port")
    parser.add_argument("--ssh-key", help="SSH private key path (default: ~/.ssh/id_rsa)")
    parser.add_argument("--app-port", type=int, default=None, help="Internal port the container exposes")
    parser.add_argument(
        "--host-port", type=int, default=None,
        help="Loopback port to publish the single container on (default: same as --app-port)",
    )
    parser.add_argument(
        "--remote-dir", default=None,
        help="Remote directory to deploy into (default: /home/<user>/deployments/<repo>)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show what would run, do not change anything")
    parser.add_argument("--cleanup", action="store_true", help="Remove deployed resources instead of deploying")
    parser.add_argument("--verbose", action="store_true", help="Extra verbose logging")
    return parser


def _value(current: Optional[str], label: str, *, interactive: bool, ask: Ask, password: bool = False) -> str:
    if current:
        return current
    if interactive:
        answer = ask(label, password=password) if password else ask(label)
        if answer:
            return answer.strip()
    if password:
        raise CredentialsError("No token provided and input is not a TTY. Provide --pat or set DOCKSHIP_PAT.")
    raise InputError(f"Missing required value: {label}")


def _port(value, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InputError(f"{label} must be a number, got {value!r}") from exc


def build_context(
    args: argparse.Namespace,
    config: AppConfig,
    *,
    interactive: bool = False,
    ask: Ask = Prompt.ask,
) -> RunContext:
    """Merge flags, environment/config defaults and prompts, then validate."""
    deployment = config.deployment
    mode = RunMode.CLEANUP if args.cleanup else RunMode.DEPLOY

    repo_url = _value(args.repo, "Git repository HTTPS URL", interactive=interactive, ask=ask)
    token = _value(
        args.pat or deployment.token,
        "Personal Access Token (input hidden)",
        interactive=interactive,
        ask=ask,
        password=True,
    )
    source = SourceReference(repo_url=repo_url, branch=args.branch or deployment.default_branch)
    source.validate()

    username = _value(args.user or deployment.default_username, "Remote SSH username", interactive=interactive, ask=ask)
    host = _value(args.server or deployment.default_host, "Remote server IP or hostname", interactive=interactive, ask=ask)
    key_path = args.ssh_key or deployment.default_key_path
    target = DeploymentTarget.for_repository(
        host=host,
        username=username,
        key_path=key_path,
        repo_name=source.repo_name,
        remote_dir=args.remote_dir,
        port=args.port or deployment.default_port,
    )
    target.validate()
    SSHCredentials(host=host, username=username, key_path=key_path, port=target.port).validate()

    app = None
    if mode is RunMode.DEPLOY:
        raw_port = args.app_port or deployment.default_app_port
        if raw_port is None:
            raw_port = _value(None, "Container internal port (e.g. 3000)", interactive=interactive, ask=ask)
        app = ApplicationSpec(app_port=_port(raw_port, "Application port"), host_port=args.host_port)
        app.validate()

    return RunContext(source=source, target=target, token=token, app=app, mode=mode, dry_run=args.dry_run)


def print_summary(console: Console, report: RunReport) -> None:
    table = Table(title=f"dockship {report.mode}: {report.status}")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Warnings")
    for stage in report.stages:
        table.add_row(stage.name, stage.status.value, "\n".join(stage.warnings) or "-")
    console.print(table)


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console(stderr=True)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return InputError.exit_code
    if args.workspace:
        config.deployment.workspace_root = args.workspace

    try:
        ctx = build_context(args, config, interactive=sys.stdin.isatty())
    except InputError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return exc.exit_code

    timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    log_file = Path(config.deployment.log_dir) / f"dockship_{timestamp}.log"
    configure_logging(verbose=args.verbose, log_file=log_file, secrets=[ctx.token])

    cancellation = CancellationToken()
    install_signal_handlers(cancellation)
    workflow = DeploymentWorkflow(config, cancellation=cancellation, log_file=log_file)

    try:
        report = workflow.run(ctx)
    except DeployerError as exc:
        console.print(f"[red]{exc.stage} failed:[/red] {exc}")
        console.print(f"Check {log_file} for details.")
        return exc.exit_code
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        console.print(f"Interrupted. Check {log_file} for details.")
        return Interrupted.exit_code
    except Exception:
        logger.exception("Unexpected error")
        console.print(f"[red]Unexpected error.[/red] Check {log_file} for details.")
        return 1

    print_summary(console, report)
    console.print(f"Log file: {log_file}")
    return 0
