"""Command line interface (nic).

Usage:
    nic deploy -f config.yaml              # Provision and bootstrap a platform
    nic deploy -f config.yaml --dry-run    # Show planned changes only
    nic destroy -f config.yaml --force     # Tear it down, continuing past failures
    nic kubeconfig -f config.yaml -o kc    # Write the cluster kubeconfig
    nic validate -f config.yaml            # Check configuration without API calls
    nic version                            # Show version and registered backends
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click

from . import engine
from .config import ConfigurationError, RuntimeConfig
from .config_loader import load_platform_config
from .errors import NicError
from .main import EXIT_FAILURE, setup_logging, supervise
from .models import PlatformConfig
from .status import LoggingStatusSink, RunContext
from .tags import NIC_VERSION


def write_private(path: Path, data: bytes) -> None:
    """Write data to a file only the current user can read, from its first byte."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        os.fchmod(f.fileno(), 0o600)
        f.write(data)


CONFIG_OPTION = click.option(
    "--file",
    "-f",
    "config_file",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Platform configuration file",
)


def _registries(ctx: click.Context) -> engine.Registries:
    factory: Callable[[], engine.Registries] = ctx.obj["registries_factory"]
    if "registries" not in ctx.obj:
        ctx.obj["registries"] = factory()
    return ctx.obj["registries"]


def _execute(
    ctx: click.Context,
    config_file: Path,
    action: Callable[[PlatformConfig, RunContext, engine.Registries], Awaitable[Any]],
) -> None:
    """Load runtime settings, run action under supervision and exit with its code."""
    try:
        runtime = RuntimeConfig.from_env()
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid runtime configuration: {e}") from e

    registries = _registries(ctx)

    async def main() -> int:
        run_ctx = RunContext(sink=LoggingStatusSink(), runtime=runtime)

        async def operation() -> None:
            config = load_platform_config(config_file)
            await action(config, run_ctx, registries)

        return await supervise(operation, run_ctx)

    code = asyncio.run(main())
    ctx.exit(code)


@click.group()
@click.version_option(version=NIC_VERSION, prog_name="nic")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"]),
    default="json",
    show_default=True,
    help="Log output format",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_format: str) -> None:
    """Nebari Infrastructure Core: stateless Kubernetes platform provisioning."""
    setup_logging(log_format=log_format, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("registries_factory", engine.build_registries)


@cli.command()
@CONFIG_OPTION
@click.option(
    "--dry-run", is_flag=True, help="Report planned changes without creating, updating or deleting"
)
@click.pass_context
def deploy(ctx: click.Context, config_file: Path, dry_run: bool) -> None:
    """Provision infrastructure, install Argo CD and configure DNS."""

    async def action(
        config: PlatformConfig, run_ctx: RunContext, registries: engine.Registries
    ) -> None:
        result = await engine.deploy(config, run_ctx, registries, dry_run=dry_run)
        if result.plan is not None:
            click.echo(f"Dry run for platform {config.project_name}")
            for change in result.plan.changes:
                click.echo(f"  {change.describe()}")
            click.echo(f"{len(result.plan.pending)} change(s) planned. No changes were made")
            if result.plan.blocked:
                raise NicError(
                    f"{len(result.plan.blocked)} resource(s) cannot be changed in place"
                )
            return

        click.echo(f"Platform {config.project_name} deployed")
        for key, value in result.summary.items():
            click.echo(f"  {key}: {value}")
        if result.install is not None:
            for step in result.install.warnings:
                click.echo(f"  warning: {step.name} not configured: {step.error}", err=True)
        if result.manual_records:
            click.echo("Create these DNS records manually:")
            for record in result.manual_records:
                click.echo(f"  {record}")

    _execute(ctx, config_file, action)


@cli.command()
@CONFIG_OPTION
@click.option("--force", is_flag=True, help="Continue past failures and report them together")
@click.option("--auto-approve", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def destroy(ctx: click.Context, config_file: Path, force: bool, auto_approve: bool) -> None:
    """Delete every resource tagged for the platform."""
    if not auto_approve:
        click.confirm(
            f"Destroy all resources defined by {config_file}? This cannot be undone",
            abort=True,
        )

    async def action(
        config: PlatformConfig, run_ctx: RunContext, registries: engine.Registries
    ) -> None:
        await engine.destroy(config, run_ctx, registries, force=force)
        click.echo(f"Platform {config.project_name} destroyed")

    _execute(ctx, config_file, action)


@cli.command()
@CONFIG_OPTION
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write to this file instead of stdout",
)
@click.pass_context
def kubeconfig(ctx: click.Context, config_file: Path, output: Path | None) -> None:
    """Print or save the cluster kubeconfig."""

    async def action(
        config: PlatformConfig, run_ctx: RunContext, registries: engine.Registries
    ) -> None:
        data = await engine.kubeconfig(config, run_ctx, registries)
        if output is None:
            click.echo(data.decode("utf-8"), nl=False)
            return
        write_private(output, data)
        click.echo(f"Kubeconfig written to {output}", err=True)

    _execute(ctx, config_file, action)


@cli.command()
@CONFIG_OPTION
@click.pass_context
def validate(ctx: click.Context, config_file: Path) -> None:
    """Validate configuration without calling any cloud API."""
    registries = _registries(ctx)
    try:
        config = load_platform_config(config_file)
        provider, _ = engine.validate(config, registries)
    except NicError as e:
        click.echo(f"Configuration invalid: {e}", err=True)
        ctx.exit(EXIT_FAILURE)
        return

    click.echo(f"Configuration valid: {config_file}")
    for key, value in provider.summary(config).items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version and registered backends."""
    registries = _registries(ctx)
    click.echo(f"nic {NIC_VERSION}")
    click.echo(f"providers: {', '.join(sorted(registries.providers.list()))}")
    click.echo(f"dns providers: {', '.join(sorted(registries.dns.list()))}")
