"""CLI commands for relaybot."""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from relaybot import __logo__, __version__
from relaybot.config.loader import load_config
from relaybot.config.schema import Config
from relaybot.errors import RelayError
from relaybot.session.models import Notification
from relaybot.session.store import SessionStore

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - terminal assistant notifications over Telegram",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, Optional[Path]] = {"config_path": None}


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _load() -> Config:
    return load_config(_state["config_path"])


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """relaybot - relay notifications and route replies back into tmux."""
    _configure_logging(verbose)
    _state["config_path"] = config


# ============================================================================
# Notify (hook entry point)
# ============================================================================


@app.command()
def notify(
    type: str = typer.Option("completed", "--type", "-t", help="completed | waiting"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project name (default: cwd name)"),
    message: str = typer.Option("", "--message", "-m", help="Notification text"),
    question: Optional[str] = typer.Option(None, "--question", help="Last user question excerpt"),
    response: Optional[str] = typer.Option(None, "--response", help="Last assistant response excerpt"),
    tmux_session: Optional[str] = typer.Option(None, "--tmux-session", help="Session to route replies into"),
):
    """Send a task notification and open a reply session."""
    from relaybot.app import create_service
    from relaybot.channels.telegram import TelegramChannel
    from relaybot.tmux import current_session

    if type not in ("completed", "waiting"):
        console.print(f"[red]Unknown notification type: {type}[/red]")
        raise typer.Exit(2)

    metadata: dict[str, str] = {}
    session_name = tmux_session or current_session()
    if session_name:
        metadata["tmux_session"] = session_name
    if question:
        metadata["user_question"] = question
    if response:
        metadata["assistant_response"] = response

    notification = Notification(
        type=type,
        project=project or Path.cwd().name,
        message=message,
        metadata=metadata,
    )

    config = _load()
    channel = TelegramChannel(config.telegram)
    service = create_service(config, channel)

    async def run() -> bool:
        await channel.open()
        try:
            result = await service.notify(notification)
        finally:
            await channel.close()
        return result.ok

    try:
        ok = asyncio.run(run())
    except RelayError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not ok:
        console.print("[red]Notification could not be delivered[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Notification sent")


# ============================================================================
# Serve
# ============================================================================


@app.command()
def serve():
    """Run the Telegram bot and route replies into tmux."""
    from relaybot.app import create_service
    from relaybot.channels.telegram import TelegramChannel

    config = _load()
    channel = TelegramChannel(config.telegram)
    create_service(config, channel)

    console.print(f"{__logo__} Starting relaybot...")

    async def run():
        try:
            await channel.start()
        finally:
            await channel.stop()

    try:
        asyncio.run(run())
    except RelayError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command("set-webhook")
def set_webhook(url: str = typer.Argument(..., help="Public HTTPS URL of the webhook endpoint")):
    """Register the Telegram webhook URL."""
    from relaybot.channels.telegram import TelegramChannel

    config = _load()
    channel = TelegramChannel(config.telegram)

    async def run() -> bool:
        await channel.open()
        try:
            return await channel.set_webhook(url)
        finally:
            await channel.close()

    try:
        ok = asyncio.run(run())
    except RelayError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Webhook set: {url}" if ok else "[red]Webhook was not accepted[/red]")


# ============================================================================
# Session records
# ============================================================================


@app.command()
def sessions():
    """List stored sessions."""
    config = _load()
    store = SessionStore(config.sessions_path)
    records = asyncio.run(store.list_sessions())
    if not records:
        console.print("No sessions.")
        return

    now = time.time()
    table = Table(title="Sessions")
    table.add_column("Token", style="cyan")
    table.add_column("Project")
    table.add_column("tmux")
    table.add_column("Status")
    table.add_column("Id", style="dim")
    for s in sorted(records, key=lambda s: s.created_at, reverse=True):
        status = "[dim]expired[/dim]" if s.is_expired(now) else "[green]active[/green]"
        table.add_row(s.token, s.project, s.source_context, status, s.id)
    console.print(table)


@app.command()
def purge():
    """Delete expired session records."""
    config = _load()
    store = SessionStore(config.sessions_path)
    try:
        removed = asyncio.run(store.purge_expired())
    except RelayError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Removed {removed} expired session(s)")


if __name__ == "__main__":
    app()
