"""Command line front end for authsession."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api.auth import AuthSession
from .api.results import run_async
from .storage.config import AppSettings

app = typer.Typer(help="Sign in to the API and send authenticated requests.")
console = Console()

session_options: dict[str, Any] = {}


def _configure_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING", format="{time} {level} {message}")


def get_session() -> AuthSession:
    settings = AppSettings.load()
    settings.update({k: v for k, v in session_options.items() if v is not None})
    return AuthSession(settings=settings)


@app.callback()
def main(
    server_url: Optional[str] = typer.Option(None, "--server-url", "-s", help="API base URL"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    global session_options
    session_options = dict(server_url=server_url)
    _configure_logging(debug or bool(AppSettings.get("debug", False)))


@app.command()
def sign_in(
    email: str = typer.Option(..., prompt=True, help="Account e-mail"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Account password"),
):
    """Sign in and store the credentials."""

    async def run() -> bool:
        async with get_session() as session:
            if not await session.sign_in(email, password):
                return False
            profile = session.auth_state.profile
            rprint(f"[bold green]Signed in as {profile.name} <{profile.email}>[/bold green]")
            return True

    if not asyncio.run(run()):
        rprint("[bold red]Sign-in failed.[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def sign_out():
    """Sign out on the server and forget the stored credentials."""

    async def run() -> None:
        async with get_session() as session:
            await session.restore()
            await session.sign_out()

    asyncio.run(run())
    rprint("[bold]Signed out.[/bold]")


@app.command()
def status():
    """Show the signed-in profile, if the stored session is still valid."""

    async def run():
        async with get_session() as session:
            if not await session.restore():
                return None
            return session.auth_state.profile

    profile = asyncio.run(run())
    if profile is None:
        rprint("[bold yellow]Not signed in.[/bold yellow]")
        raise typer.Exit(code=1)

    table = Table(show_header=False)
    table.add_row("ID", profile.id)
    table.add_row("Name", profile.name)
    table.add_row("E-mail", profile.email)
    table.add_row("Verified", "yes" if profile.verified else "no")
    table.add_row("Avatar", profile.avatar or "-")
    console.print(Panel(table, title="Profile"))


@app.command()
def request(
    method: str = typer.Argument(..., help="HTTP method, e.g. GET"),
    path: str = typer.Argument(..., help="API path, e.g. /product/listings"),
    data: Optional[str] = typer.Option(None, "--data", help="JSON request body"),
):
    """Send an authenticated request and print the response body."""
    try:
        body = json.loads(data) if data else None
    except ValueError as exc:
        rprint(f"[bold red]Invalid JSON body: {exc}[/bold red]")
        raise typer.Exit(code=2)

    async def run():
        async with get_session() as session:
            await session.restore()
            kwargs = {"json": body} if body is not None else {}
            return await run_async(session.client.request(method.upper(), path, **kwargs))

    result = asyncio.run(run())
    if not result.ok:
        rprint(f"[bold red]{result.kind.value}: {result.error}[/bold red]")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(result.data, default=str))


@app.command()
def config(
    key: Optional[str] = typer.Argument(None, help="Setting to change"),
    value: Optional[str] = typer.Argument(None, help="New value (JSON or plain string)"),
):
    """Show the settings, or change one of them."""
    if key is None:
        console.print_json(json.dumps(AppSettings.load()))
        return
    if value is None:
        typer.echo(f"{key} = {AppSettings.get(key)!r}")
        return
    try:
        parsed: Any = json.loads(value)
    except ValueError:
        parsed = value
    AppSettings.set(key, parsed)
    rprint(f"[green]{key} set to {parsed!r}[/green]")


if __name__ == "__main__":
    app()
