"""Typer-powered command line interface for ``valheimctl``.

``valheimctl provision`` brings up a Linode instance with the persistent game
volume attached; ``valheimctl decommission`` tears it down again while keeping
the volume. Every command runs inside a structured logging operation and ends
with a table of per-step outcomes.
"""
from __future__ import annotations

import json
import shutil
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .info_file import InfoFileError
from .logging import OperationScope, StepStatus, StructuredLogger
from .preflight import Preflight
from .providers import (
    CloudClient,
    DNSClient,
    DiscordNotifier,
    LinodeError,
    LinodeProvider,
    Notifier,
    NullNotifier,
    RemoteExecError,
    RemoteExecutor,
    Route53Error,
    Route53Provider,
    SSHExecutor,
)
from .templates import TemplateEngine, TemplateRenderError
from .workflows import Decommissioner, Provisioner, WorkflowError

app = typer.Typer(
    add_completion=False,
    help="Provision and decommission a Valheim server on Linode.",
)
config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to valheimctl's YAML config file.",
)

_STATUS_STYLES = {
    StepStatus.SUCCESS: "green",
    StepStatus.SKIPPED: "dim",
    StepStatus.WARNING: "yellow",
    StepStatus.ERROR: "red",
}

_WORKFLOW_ERRORS = (
    WorkflowError,
    LinodeError,
    Route53Error,
    RemoteExecError,
    InfoFileError,
    TemplateRenderError,
)


@dataclass(slots=True)
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    cloud: CloudClient
    dns: DNSClient | None
    remote: RemoteExecutor
    notifier: Notifier
    preflight: Preflight
    sleep: Callable[[float], None] = time.sleep


def _build_runtime(config: AppConfig) -> RuntimeContext:
    cloud = LinodeProvider(cli_bin=config.linode.cli_bin)
    dns_config = config.dns
    dns = (
        Route53Provider(
            aws_bin=dns_config.aws_bin,
            access_key_id=dns_config.aws_access_key_id,
            secret_access_key=dns_config.aws_secret_access_key,
        )
        if dns_config.requested
        else None
    )
    remote_config = config.remote
    remote = SSHExecutor(
        ssh_bin=remote_config.ssh_bin,
        sshpass_bin=remote_config.sshpass_bin,
        user=remote_config.user,
        connect_timeout=remote_config.connect_timeout,
    )
    notify_config = config.notify
    notifier: Notifier
    if notify_config.discord_webhook_url:
        notifier = DiscordNotifier(
            webhook_url=notify_config.discord_webhook_url,
            username=notify_config.discord_username,
            timeout=notify_config.timeout,
        )
    else:
        notifier = NullNotifier()
    return RuntimeContext(
        config=config,
        logger=StructuredLogger(config.paths.logs_dir, console=console),
        templates=TemplateEngine.with_overrides(config.paths.templates_dir),
        cloud=cloud,
        dns=dns,
        remote=remote,
        notifier=notifier,
        preflight=Preflight(config, cloud, dns=dns, remote=remote, which=shutil.which),
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        _fatal(str(exc))
    runtime = _build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the valheimctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"valheimctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _fatal(message: str) -> NoReturn:
    err_console.print(
        f"[ERROR] {message}",
        style="red",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
    raise typer.Exit(code=ExitCode.ERROR)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.ERROR,
    changed: bool = False,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    op.error(message, errors=list(errors or [message]), rc=rc, changed=int(changed))
    _render_steps(op)
    _fatal(message)


def _render_steps(op: OperationScope) -> None:
    if not op.steps:
        return
    table = Table(show_header=True, header_style="bold magenta", title=f"{op.command} summary")
    table.add_column("Step", style="bold")
    table.add_column("Status")
    table.add_column("Details")
    for step in op.steps:
        style = _STATUS_STYLES.get(step.status, "")
        table.add_row(step.name, Text(step.status.value, style=style), Text(step.detail or ""))
    console.print(table)


def _finish(op: OperationScope, message: str, *, context: dict[str, object]) -> None:
    warnings = [f"{step.name}: {step.detail or ''}" for step in op.warnings]
    if warnings:
        op.warning(message, warnings=warnings, changed=1, context=context)
    else:
        op.success(message, changed=1, context=context)
    _render_steps(op)


@app.command()
def provision(ctx: typer.Context) -> None:
    """Create the Linode instance, attach the game volume and start the server."""
    runtime = _get_runtime(ctx)
    config = runtime.config
    provisioner = Provisioner(
        config,
        cloud=runtime.cloud,
        dns=runtime.dns,
        remote=runtime.remote,
        notifier=runtime.notifier,
        templates=runtime.templates,
        preflight=runtime.preflight,
        sleep=runtime.sleep,
    )
    with runtime.logger.operation(
        "provision",
        args={"config_file": str(config.config_file)},
        target={"kind": "linode", "label": config.linode.label, "region": config.linode.region},
    ) as op:
        try:
            result = provisioner.run(op)
        except WorkflowError as exc:
            _command_error(op, str(exc), changed=exc.changed)
        except _WORKFLOW_ERRORS as exc:
            _command_error(op, str(exc), changed=True)

        info = result.info
        _finish(
            op,
            "Valheim server deployed.",
            context={
                "instance_id": info.instance_id,
                "ip": info.ip,
                "volume_id": info.volume_id,
                "volume_created": result.volume_created,
                "dns_change_id": result.dns_change_id,
                "info_file": str(result.info_path),
            },
        )

        details = Table(show_header=False, title="Valheim Server Deployed")
        details.add_column("Key", style="bold")
        details.add_column("Value")
        details.add_row("Linode ID", str(info.instance_id))
        details.add_row("IP Address", info.ip or "")
        details.add_row("Volume", f"{info.volume_label} ({info.volume_size}GB, ID: {info.volume_id})")
        details.add_row("Server Name", info.server_name or "")
        details.add_row("World Name", info.world_name or "")
        for index, target in enumerate(info.connect_targets):
            details.add_row("Connect To" if index == 0 else "(or via IP)", target)
        details.add_row("Credentials", f"root and server passwords saved in {result.info_path}")
        details.add_row("Docker Logs", f"ssh root@{info.ip} docker logs -f {info.container_name}")
        console.print(details)


@app.command()
def decommission(ctx: typer.Context) -> None:
    """Shut down and delete the recorded instance, preserving the game volume."""
    runtime = _get_runtime(ctx)
    config = runtime.config
    decommissioner = Decommissioner(
        config,
        cloud=runtime.cloud,
        remote=runtime.remote,
        notifier=runtime.notifier,
        preflight=runtime.preflight,
        sleep=runtime.sleep,
    )
    with runtime.logger.operation(
        "decommission",
        args={"config_file": str(config.config_file), "info_file": str(config.paths.info_file)},
        target={"kind": "linode", "label": config.linode.label},
    ) as op:
        try:
            result = decommissioner.run(op)
        except WorkflowError as exc:
            _command_error(op, str(exc), changed=exc.changed)
        except _WORKFLOW_ERRORS as exc:
            _command_error(op, str(exc), changed=True)

        _finish(
            op,
            "Valheim server decommissioned.",
            context={
                "instance_id": result.instance.id,
                "volume_id": result.volume.id if result.volume is not None else None,
                "archive": str(result.archive_path),
            },
        )
        if result.volume is not None:
            console.print(
                f"Volume '{result.volume.label}' (ID: {result.volume.id}) has been preserved. "
                "Run `valheimctl provision` to reattach it to a new server."
            )


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit the resolved configuration as JSON.",
    ),
) -> None:
    """Display the merged configuration with secrets redacted."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()
    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)
        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
