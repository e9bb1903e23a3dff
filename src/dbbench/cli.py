"""
Command line interface for dbbench.

Every command maps onto one registry, supervisor or pull operation; failures
are printed to stderr with their category and exit with status 1.
"""

import json
from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from dbbench.config import BinaryConfigStore, get_settings
from dbbench.engines import all_tools
from dbbench.managers.container_manager import get_container_manager
from dbbench.managers.pull_manager import get_pull_manager
from dbbench.models.schemas import PullRequest
from dbbench.utils import get_logger, setup_logging
from dbbench.utils.exceptions import (
    ConflictError,
    ContainerNotRunningError,
    DBBenchError,
    IncompatibleVersionError,
    NotFoundError,
    StartFailureError,
    ValidationError,
)

logger = get_logger(__name__)

app = typer.Typer(
    name="dbbench",
    help="Provision, start, stop, clone and sync local database instances.",
    no_args_is_help=True,
)
config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Binary path configuration.")


def _category(error: DBBenchError) -> str:
    if isinstance(error, NotFoundError):
        return "Not found"
    if isinstance(error, ConflictError):
        return "Conflict"
    if isinstance(error, ValidationError):
        return "Invalid input"
    if isinstance(error, StartFailureError):
        return "Start failed"
    if isinstance(error, IncompatibleVersionError):
        return "Incompatible version"
    return "Error"


@contextmanager
def handle_errors() -> Iterator[None]:
    """Translate dbbench errors into a stderr message and exit status 1."""
    try:
        yield
    except DBBenchError as e:
        typer.secho(f"{_category(e)}: {e}", fg=typer.colors.RED, err=True)
        if isinstance(e, StartFailureError):
            if e.remediation:
                typer.echo(e.remediation, err=True)
            elif e.output:
                typer.echo(e.output.strip()[-2000:], err=True)
        raise typer.Exit(1) from e


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override the log level (DEBUG, INFO, WARNING, ERROR)"
    ),
) -> None:
    """dbbench: local database instances across engines."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level, settings.log_format)


# Containers


@app.command("create")
def create(
    name: str = typer.Argument(..., help="Container name"),
    engine: str = typer.Option(..., "--engine", "-e", help="Engine kind, e.g. postgresql"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="Engine version"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to use"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Primary database"),
    path: Optional[str] = typer.Option(None, "--path", help="Database file (sqlite, duckdb)"),
    binary_path: Optional[str] = typer.Option(
        None, "--binary-path", help="Directory with bundled binaries (bin/, lib/)"
    ),
    start: bool = typer.Option(False, "--start", help="Start the container after creating it"),
) -> None:
    """Create a new container."""
    with handle_errors():
        manager = get_container_manager()
        container = manager.create(
            name,
            engine,
            version=version,
            port=port,
            database=database,
            path=path,
            binary_path=binary_path,
        )
        location = f"port {container.port}" if container.port else container.path
        typer.echo(f'Created {container.engine} container "{name}" ({location})')
        if start:
            result = manager.start(name)
            typer.echo(result.connection_string)


@app.command("start")
def start(name: str = typer.Argument(..., help="Container name")) -> None:
    """Start a container."""
    with handle_errors():
        result = get_container_manager().start(name)
        if result.already_running:
            typer.echo(f'"{name}" is already running')
        elif result.port_changed_from is not None:
            typer.secho(
                f"Port {result.port_changed_from} was in use, moved to {result.port}",
                fg=typer.colors.YELLOW,
                err=True,
            )
        typer.echo(result.connection_string)


@app.command("stop")
def stop(name: str = typer.Argument(..., help="Container name")) -> None:
    """Stop a container."""
    with handle_errors():
        get_container_manager().stop(name)
        typer.echo(f'Stopped "{name}"')


@app.command("clone")
def clone(
    source: str = typer.Argument(..., help="Stopped container to copy"),
    target: str = typer.Argument(..., help="Name of the new container"),
) -> None:
    """Clone a stopped container."""
    with handle_errors():
        container = get_container_manager().clone(source, target)
        location = f"port {container.port}" if container.port else container.path
        typer.echo(f'Cloned "{source}" to "{target}" ({location})')


@app.command("connect")
def connect(
    name: str = typer.Argument(..., help="Container name"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database to open"),
) -> None:
    """Open an interactive client session."""
    with handle_errors():
        manager = get_container_manager()
        _, engine, config = manager.resolve(name)
        if not engine.is_running(config):
            raise ContainerNotRunningError(name)
        code = engine.connect(config, database)
    raise typer.Exit(code)


@app.command("list")
def list_containers(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List containers."""
    with handle_errors():
        containers = get_container_manager().list()

    if as_json:
        typer.echo(
            json.dumps(
                [
                    {
                        "name": c.name,
                        "engine": c.engine,
                        "version": c.version,
                        "port": c.port,
                        "status": c.status,
                        "database": c.database,
                        "databases": c.databases,
                        "path": c.path,
                    }
                    for c in containers
                ],
                indent=2,
            )
        )
        return

    if not containers:
        typer.echo("No containers. Create one with: dbbench create <name> --engine <engine>")
        return

    typer.echo(f"{'NAME':<20} {'ENGINE':<12} {'VERSION':<10} {'PORT':<7} STATUS")
    for c in containers:
        port = str(c.port) if c.port else "-"
        typer.echo(f"{c.name:<20} {c.engine:<12} {c.version:<10} {port:<7} {c.status}")


@app.command("delete")
def delete(
    name: str = typer.Argument(..., help="Container name"),
    force: bool = typer.Option(False, "--force", "-f", help="Stop the container if it is running"),
) -> None:
    """Delete a container and its data."""
    with handle_errors():
        get_container_manager().remove(name, force=force)
        typer.echo(f'Deleted "{name}"')


@app.command("url")
def url(
    name: str = typer.Argument(..., help="Container name"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database name"),
) -> None:
    """Print a container's connection string."""
    with handle_errors():
        typer.echo(get_container_manager().get_connection_string(name, database))


@app.command("pull")
def pull(
    name: str = typer.Argument(..., help="Local container"),
    from_url: str = typer.Option(..., "--from", help="Connection URL of the remote database"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Target database"),
    as_database: Optional[str] = typer.Option(
        None, "--as", help="Clone into this new database instead of replacing"
    ),
    no_backup: bool = typer.Option(False, "--no-backup", help="Skip the backup (requires --force)"),
    force: bool = typer.Option(False, "--force", "-f", help="Confirm destructive choices"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would happen"),
    post_script: Optional[str] = typer.Option(
        None, "--post-script", help="Script to run after the pull"
    ),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Pull data from a remote database into a local container."""
    with handle_errors():
        result = get_pull_manager().pull(
            PullRequest(
                container=name,
                from_url=from_url,
                database=database,
                as_database=as_database,
                no_backup=no_backup,
                force=force,
                dry_run=dry_run,
                post_script=post_script,
            )
        )

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return

    typer.echo(result.message)
    typer.echo(f"  Source:   {result.source}")
    typer.echo(f"  Database: {result.database_url}")
    if result.backup_url:
        typer.echo(f"  Backup:   {result.backup_url}")


# Binary configuration


def _store() -> BinaryConfigStore:
    return BinaryConfigStore(get_settings().config_file).load()


@config_app.command("show")
def config_show(as_json: bool = typer.Option(False, "--json", help="Output as JSON")) -> None:
    """Show configured binary paths."""
    store = _store()
    if as_json:
        typer.echo(store.data.model_dump_json(indent=2))
        return
    if not store.data.binaries:
        typer.echo("No binaries configured. Run: dbbench config detect")
        return
    for tool, entry in sorted(store.data.binaries.items()):
        version = entry.version or "?"
        typer.echo(f"{tool:<20} {version:<10} {entry.source:<8} {entry.path}")


@config_app.command("detect")
def config_detect() -> None:
    """Search PATH for every engine binary and record what was found."""
    result = _store().detect(all_tools())
    typer.echo(f"Found {len(result.found)} tools")
    if result.missing:
        typer.echo(f"Missing: {', '.join(result.missing)}")


@config_app.command("set")
def config_set(
    tool: str = typer.Argument(..., help="Tool name, e.g. psql"),
    path: str = typer.Argument(..., help="Path to the executable"),
) -> None:
    """Set the path of a tool."""
    with handle_errors():
        entry = _store().set_path(tool, path)
        typer.echo(f"{tool} -> {entry.path}")


@config_app.command("unset")
def config_unset(tool: str = typer.Argument(..., help="Tool name")) -> None:
    """Remove the configured path of a tool."""
    if _store().unset(tool):
        typer.echo(f"Removed {tool}")
    else:
        typer.echo(f"{tool} was not configured")


@config_app.command("path")
def config_path() -> None:
    """Print the location of the configuration file."""
    typer.echo(str(get_settings().config_file))


if __name__ == "__main__":
    app()
