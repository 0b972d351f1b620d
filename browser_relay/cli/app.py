"""
browser-relay — command line entry point.

Commands:
  run [URL]        Launch a browser, relay its telemetry, answer collector commands
  check            Validate the collector's identity
  wipe             Clear the collector's logs
  classify VALUE   Show how a key/value pair would be treated by the redactor
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

# -- Suppress console logs BEFORE any other browser_relay imports --
from browser_relay.log import suppress_console_logs

suppress_console_logs()

from browser_relay.browser.manager import BrowserManager
from browser_relay.browser.producers import PageProducers
from browser_relay.collector import CollectorClient
from browser_relay.config import Config
from browser_relay.console_recorder import ConsoleRecorder
from browser_relay.log import setup_logging
from browser_relay.models import Notification, Settings
from browser_relay.network_recorder import NetworkRecorder
from browser_relay.relay import CaptureRelay
from browser_relay.sanitize.classifier import (
    is_sensitive_key,
    is_sensitive_value,
    normalized_entropy,
)
from browser_relay.session.manager import SessionManager

log = setup_logging("cli", log_file="cli.log")
cli = typer.Typer(no_args_is_help=True, add_completion=False)
console = Console()

VERSION = "0.1.0"


def _settings_option():
    return typer.Option(None, "--settings", "-s", help="JSON settings snapshot overriding .env defaults")


def _load_settings(path: Optional[Path]) -> Settings:
    try:
        return Settings.load(path)
    except (OSError, ValueError) as e:
        console.print(f"[red]✗[/] Could not load settings from {path}: {e}")
        raise typer.Exit(code=2)


def _print_notification(notification: Notification) -> None:
    where = f"{notification.server_host}:{notification.server_port}"
    if notification.type == "server-validation-success" and notification.server_info:
        info = notification.server_info
        console.print(f"[green]●[/] collector {info.name} v{info.version} at {where}")
    elif notification.type == "server-validation-failed":
        detail = notification.error or (f"HTTP {notification.status}" if notification.status else "")
        console.print(f"[red]●[/] validation failed at {where}: {notification.reason} {detail}".rstrip())
    elif notification.type == "websocket-connected":
        console.print(f"[green]●[/] command channel open at {where}")


# ================================================================
#  run
# ================================================================


async def _run(url: str, settings: Settings, headless: bool, inspect: list[str]) -> None:
    browser = BrowserManager(headless=headless)
    page = await browser.start()
    producers = PageProducers(page)

    session = SessionManager(settings, on_notification=_print_notification)
    relay = CaptureRelay(session, producers)
    relay.register_commands()

    network = NetworkRecorder(page, relay)
    console_rec = ConsoleRecorder(page, relay)

    try:
        await session.start()
        network.start()
        console_rec.start()

        await browser.navigate(url)

        for selector in inspect:
            element = await producers.snapshot_element(selector)
            if element is not None:
                await relay.submit_element(element)

        console.print("[dim]Relaying. Close the browser or press Ctrl+C to stop.[/]")
        await browser.wait_closed()
    finally:
        await network.stop()
        await console_rec.stop()
        await session.stop()
        await browser.close()


@cli.command()
def run(
    url: str = typer.Argument(Config.START_URL, help="Page to open"),
    settings_file: Optional[Path] = _settings_option(),
    headless: bool = typer.Option(Config.HEADLESS, "--headless/--no-headless"),
    inspect: list[str] = typer.Option([], "--inspect", "-i", help="CSS selector to snapshot as selected-element"),
) -> None:
    """Launch a browser and relay its telemetry to the collector."""
    settings = _load_settings(settings_file)
    console.print(f"[bold]browser-relay[/] v{VERSION} → {settings.server_host}:{settings.server_port}")
    try:
        asyncio.run(_run(url, settings, headless, inspect))
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/]")


# ================================================================
#  check / wipe
# ================================================================


async def _check(settings: Settings):
    client = CollectorClient(settings)
    try:
        return await client.check_identity()
    finally:
        await client.close()


@cli.command()
def check(settings_file: Optional[Path] = _settings_option()) -> None:
    """Validate that a real collector is listening at host:port."""
    settings = _load_settings(settings_file)
    result = asyncio.run(_check(settings))

    table = Table(show_header=False, box=None)
    table.add_row("collector", f"{settings.server_host}:{settings.server_port}")
    if result.ok and result.server_info:
        table.add_row("status", "[green]valid[/]")
        table.add_row("name", result.server_info.name)
        table.add_row("version", result.server_info.version)
    else:
        table.add_row("status", f"[red]{result.reason}[/]")
        if result.status:
            table.add_row("http", str(result.status))
        if result.error:
            table.add_row("error", result.error)
    console.print(table)

    if not result.ok:
        raise typer.Exit(code=1)


async def _wipe(settings: Settings) -> bool:
    session = SessionManager(settings)
    try:
        return await CaptureRelay(session).wipe_logs()
    finally:
        await session.collector.close()


@cli.command()
def wipe(settings_file: Optional[Path] = _settings_option()) -> None:
    """Ask the collector to clear all captured logs."""
    settings = _load_settings(settings_file)
    if asyncio.run(_wipe(settings)):
        console.print("[green]✓[/] Logs wiped")
    else:
        console.print("[red]✗[/] Could not wipe logs (see cli.log)")
        raise typer.Exit(code=1)


# ================================================================
#  classify
# ================================================================


@cli.command()
def classify(
    value: str = typer.Argument(..., help="Value to classify"),
    key: str = typer.Option("", "--key", "-k", help="Key name the value is stored under"),
) -> None:
    """Show whether a key/value pair would be redacted in hide-sensitive mode."""
    key_hit = bool(key) and is_sensitive_key(key)
    value_hit = is_sensitive_value(value)

    table = Table(show_header=False, box=None)
    if key:
        table.add_row("key", key, "[red]sensitive[/]" if key_hit else "[green]ok[/]")
    table.add_row("value", value if len(value) <= 60 else value[:57] + "…",
                  "[red]sensitive[/]" if value_hit else "[green]ok[/]")
    table.add_row("entropy", f"{normalized_entropy(value):.3f}", "")
    console.print(table)
    console.print("[red]redacted[/]" if key_hit or value_hit else "[green]kept[/]")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
