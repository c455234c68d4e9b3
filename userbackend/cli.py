"""userbackend CLI - run and inspect the users API."""

import os
from typing import Optional, Sequence

import typer

from userbackend.config import format_config_sources, reload_config
from userbackend.config.properties import PROFILE_ENV_VAR
from userbackend.version import get_version

app = typer.Typer(help="User management REST backend", no_args_is_help=True)


def version_callback(v: bool) -> None:
    if v:
        typer.echo(f"v{get_version()}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "-v", "--version", is_eager=True, callback=version_callback
    )
) -> None:
    pass


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (server.host)"),
    port: Optional[int] = typer.Option(None, help="Port (server.port)"),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Configuration profile to activate"
    ),
    reload: bool = typer.Option(False, help="Restart on code changes"),
) -> None:
    """Start the HTTP server."""
    from userbackend.application import create_app
    from userbackend.core.server import start_uvicorn

    if profile:
        # The reloader re-creates the app in a new process, which reads this
        os.environ[PROFILE_ENV_VAR] = profile

    config = reload_config(profile)
    host = host or config.get("server.host", "0.0.0.0")
    port = port or config.get_int("server.port", 8080)
    log_level = str(config.get("logging.level", "INFO"))
    access_log = config.get_bool("server.access_log", True)

    server = None if reload else create_app(config=config)
    start_uvicorn(server, host, port, log_level, access_log, reload=reload)


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(get_version())


@app.command("config")
def show_config(
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Configuration profile to activate"
    ),
    columns: int = typer.Option(3, "--columns", min=1, help="Keys per table row"),
) -> None:
    """Print where every configuration key was resolved from."""
    config = reload_config(profile)
    typer.echo(f"Active profile: {config.profile}")
    for line in format_config_sources(config, max_cols=columns):
        typer.echo(line)


def main(argv: Optional[Sequence[str]] = None) -> int:
    return app(
        args=list(argv) if argv is not None else None,
        standalone_mode=False,
    )
