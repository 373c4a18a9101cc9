"""Command line entry point: ``memoryshare serve``."""

import asyncio
import logging
import sys
import threading
from pathlib import Path

import click
import uvicorn
from fastapi import FastAPI

from memoryshare.core.config import Settings
from memoryshare.core.errors import MemoryShareError
from memoryshare.core.logging import configure_logging
from memoryshare.db.models import AccountState, AccountType
from memoryshare.main import build_services, create_app
from memoryshare.services.user_store import UserStore

logger = logging.getLogger(__name__)

CONSOLE_COMMANDS = ("exit", "destroy", "rotate_key")


def bootstrap_super_admin(user_store: UserStore) -> None:
    """Prompt for the first account; it is created as a complete SuperAdmin."""
    click.echo("No users found. Create the initial SuperAdmin account.")
    while True:
        forename = click.prompt("Forename")
        surname = click.prompt("Surname")
        email = click.prompt("Email")
        password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        try:
            user = user_store.add_user(
                forename,
                surname,
                email,
                password,
                account_type=AccountType.SUPER_ADMIN,
                state=AccountState.COMPLETE,
            )
        except MemoryShareError as exc:
            click.echo(f"Could not create account: {exc.tag}", err=True)
            continue
        click.echo(f"Created SuperAdmin {user.username}")
        return


def handle_console_command(command: str, app: FastAPI, server: uvicorn.Server) -> bool:
    """Apply one console command; returns False once the server should stop reading."""
    command = command.strip()
    if not command:
        return True
    if command == "exit":
        logger.warning("Exit requested from console")
        server.should_exit = True
        return False
    if command == "destroy":
        if not click.confirm("Remove every published and staged file?", default=False):
            return True
        future = asyncio.run_coroutine_threadsafe(app.state.file_store.destroy(), app.state.loop)
        future.result()
        click.echo("File store destroyed")
        return True
    if command == "rotate_key":
        app.state.sessions.rotate()
        click.echo("Session key rotated")
        return True
    click.echo(f"Unknown command {command!r}; expected one of {', '.join(CONSOLE_COMMANDS)}", err=True)
    return True


def _console(app: FastAPI, server: uvicorn.Server) -> None:
    for line in sys.stdin:
        try:
            if not handle_console_command(line, app, server):
                return
        except MemoryShareError as exc:
            click.echo(f"Command failed: {exc.tag}", err=True)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="memoryshare")
def cli() -> None:
    """MemoryShare media sharing service."""


@cli.command()
@click.option(
    "-v",
    "--verbosity",
    type=click.IntRange(0, 4),
    default=3,
    show_default=True,
    help="0 none, 1 critical, 2 errors and warnings, 3 requests, 4 debug.",
)
@click.option(
    "--root",
    "root_path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding config/, db/ and static/.",
)
def serve(verbosity: int, root_path: Path | None) -> None:
    """Start the HTTP server."""
    configure_logging(verbosity)
    settings = Settings(root_path=root_path) if root_path else Settings()

    app = create_app(settings)
    build_services(app, settings)
    if app.state.user_store.count() == 0:
        bootstrap_super_admin(app.state.user_store)

    config = uvicorn.Config(
        app,
        host=settings.http_host,
        port=settings.http_port,
        timeout_graceful_shutdown=5,
        log_config=None,
    )
    server = uvicorn.Server(config)

    if settings.enable_console_commands:
        threading.Thread(target=_console, args=(app, server), name="console", daemon=True).start()
        logger.info("Console commands enabled: %s", ", ".join(CONSOLE_COMMANDS))

    server.run()


def main() -> None:
    cli()
