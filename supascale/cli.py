"""supascale -- manage multiple self-hosted Supabase instances on one host.

Usage:
    supascale [--registry-file PATH] COMMAND [ARGS]
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Any, Callable

import click
from rich.console import Console
from rich.table import Table

from supascale import __version__
from supascale.config import SupascaleConfig, get_config
from supascale.engine.lifecycle import ProjectManager
from supascale.errors import ProjectNotFoundError, SupascaleError

logger = logging.getLogger("supascale.cli")

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
SEPARATOR = "-" * 70


def setup_logging(config: SupascaleConfig) -> None:
    """Configure Python logging. Diagnostics go to stderr, never stdout."""
    level = getattr(logging, config.log_level.upper(), logging.WARNING)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))

    fmt = "%(asctime)s %(name)-28s %(levelname)-5s %(message)s"
    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


class SupascaleGroup(click.Group):
    """Command group that answers a missing or unknown command with usage and exit code 1."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if not args and not ctx.resilient_parsing:
            click.echo(ctx.get_help(), err=True)
            ctx.exit(1)
        return super().parse_args(ctx, args)

    def resolve_command(self, ctx: click.Context, args: list[str]):
        name = args[0] if args else None
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            click.echo(f"Unknown command: {name}\n", err=True)
            click.echo(ctx.get_help(), err=True)
            ctx.exit(1)
        return super().resolve_command(ctx, args)


pass_manager = click.make_pass_decorator(ProjectManager)


def _echo_projects(manager: ProjectManager) -> None:
    records = manager.list_projects()
    if not records:
        click.echo("No projects configured yet.")
        return

    table = Table(title="Configured Supabase Projects")
    table.add_column("Project ID", style="bold")
    table.add_column("API", justify="right")
    table.add_column("DB", justify="right")
    table.add_column("Studio", justify="right")
    table.add_column("Directory", overflow="fold")
    for record in records:
        table.add_row(
            record.project_id,
            str(record.ports.api),
            str(record.ports.db),
            str(record.ports.studio),
            record.directory,
        )
    Console().print(table)


def _warn(messages: list[str]) -> None:
    for message in messages:
        click.echo(f"Warning: {message}", err=True)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Report Supascale errors as a message plus exit code 1.

    For an unknown project id the known projects are listed as well.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ProjectNotFoundError as e:
            manager = click.get_current_context().find_object(ProjectManager)
            if manager is not None:
                click.echo("Available projects:")
                _echo_projects(manager)
            raise click.ClickException(str(e)) from e
        except SupascaleError as e:
            raise click.ClickException(str(e)) from e
        except OSError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


@click.group(cls=SupascaleGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, prog_name="supascale")
@click.option(
    "--registry-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Project registry JSON file [env: SUPASCALE_REGISTRY_FILE].",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level [env: SUPASCALE_LOG_LEVEL].",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--log-file", default=None, help="Also log to this file.")
@click.pass_context
def cli(
    ctx: click.Context,
    registry_file: Path | None,
    log_level: str | None,
    verbose: bool,
    log_file: str | None,
) -> None:
    """Supascale -- manage multiple local Supabase instances."""
    try:
        config = get_config()
    except SupascaleError as e:
        raise click.ClickException(str(e)) from e
    if registry_file:
        config.registry_file = registry_file.expanduser()
    if log_level:
        config.log_level = log_level
    if verbose:
        config.log_level = "DEBUG"
    if log_file:
        config.log_file = log_file
    setup_logging(config)

    manager = ProjectManager(config)
    try:
        if manager.registry.initialize():
            click.echo(f"Initialized project database at {manager.registry.path}")
    except OSError as e:
        raise click.ClickException(
            f"Cannot create project registry {manager.registry.path}: {e}"
        ) from e
    ctx.obj = manager


# ── list ──────────────────────────────────────────────────────────────────


@cli.command("list")
@pass_manager
@handle_errors
def list_command(manager: ProjectManager) -> None:
    """List all configured projects."""
    _echo_projects(manager)


# ── add ───────────────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--project-id",
    prompt="Enter project ID (must be unique)",
    help="ID of the new project; prompted for when omitted.",
)
@pass_manager
@handle_errors
def add(manager: ProjectManager, project_id: str) -> None:
    """Add a new project: clone, generate secrets, assign ports."""
    click.echo(f"Creating project '{project_id}' (cloning Supabase repository)...")
    result = manager.add(project_id)
    record = result.record
    ports = record.ports

    click.echo(f"✓ Project '{record.project_id}' added with the following ports:")
    click.echo(f"  API Port: {ports.api}")
    click.echo(f"  DB Port: {ports.db}")
    click.echo(f"  Studio Port: {ports.studio}")
    click.echo(f"  Kong HTTPS Port: {ports.kong_https}")
    _warn(result.warnings)

    click.echo("")
    click.echo(SEPARATOR)
    click.echo("IMPORTANT ACTION REQUIRED:")
    click.echo(SEPARATOR)
    click.echo("Generated secrets have been saved to:")
    click.echo(f"  {result.env_file}")
    click.echo("  DASHBOARD_PASSWORD: [GENERATED]")
    click.echo("  POSTGRES_PASSWORD:  [GENERATED]")
    click.echo("  VAULT_ENC_KEY:      [GENERATED]")
    click.echo("")
    click.echo("The generated JWT_SECRET (needed for the next step) is:")
    click.echo(f"  {result.secrets.jwt_secret}")
    click.echo("")
    click.echo("You MUST now generate the ANON_KEY and SERVICE_ROLE_KEY JWTs,")
    click.echo("signed with the JWT_SECRET above. See:")
    click.echo("  https://supabase.com/docs/guides/self-hosting/docker")
    click.echo("")
    click.echo(f"Then edit {result.env_file} and fill in:")
    click.echo("  ANON_KEY=")
    click.echo("  SERVICE_ROLE_KEY=")
    click.echo(SEPARATOR)
    click.echo("")
    click.echo("Once the JWTs are in place, start the instance with:")
    click.echo(f"  supascale start {record.project_id}")


# ── start / stop ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("project_id")
@pass_manager
@handle_errors
def start(manager: ProjectManager, project_id: str) -> None:
    """Start a project's containers."""
    click.echo(f"Starting Supabase for project '{project_id}'...")
    result = manager.start(project_id)
    _warn(result.warnings)
    click.echo(f"✓ Supabase should now be running for project '{project_id}':")
    click.echo(f"  Studio URL: {result.studio_url}")
    click.echo(f"  API URL: {result.api_url}")


@cli.command()
@click.argument("project_id")
@click.option(
    "--keep-volumes",
    is_flag=True,
    help="Keep named volumes (the database). By default they are removed.",
)
@pass_manager
@handle_errors
def stop(manager: ProjectManager, project_id: str, keep_volumes: bool) -> None:
    """Stop a project's containers and remove its volumes."""
    click.echo(f"Stopping Supabase for project '{project_id}'...")
    manager.stop(project_id, remove_volumes=not keep_volumes)
    click.echo(f"✓ Supabase stopped for project '{project_id}'")


# ── remove ────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("project_id")
@pass_manager
@handle_errors
def remove(manager: ProjectManager, project_id: str) -> None:
    """Stop a project and remove it from the registry."""
    result = manager.remove(project_id)
    if result.stop_error:
        _warn([f"could not stop '{project_id}': {result.stop_error}"])
    click.echo(f"✓ Project '{project_id}' removed from the database.")
    click.echo("Note: project files and Docker images were not deleted.")
    click.echo(f"  Directory: {result.record.directory}")


# ── help ──────────────────────────────────────────────────────────────────


@cli.command("help")
@click.pass_context
def help_command(ctx: click.Context) -> None:
    """Show this help message."""
    click.echo(ctx.parent.get_help())


# ── entry point ───────────────────────────────────────────────────────────


def main() -> None:
    """Entry point for the supascale command."""
    cli(prog_name="supascale")


if __name__ == "__main__":
    main()
