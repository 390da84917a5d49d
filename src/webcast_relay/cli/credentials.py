"""CLI: webcast credentials set|show|clear"""

from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from webcast_relay.config import get_settings
from webcast_relay.credentials import load_credentials_file, save_credentials_file
from webcast_relay.models.session import Cookie, Credentials, normalize_username

console = Console()


def _parse_cookies(values):
    from webcast_relay.cli.main import parse_cookie_options
    return parse_cookie_options(values)


@click.group()
def credentials():
    """Saved socket URLs and cookies, one entry per username."""


@credentials.command("set")
@click.argument("username")
@click.option("--url", required=True, help="Captured webcast socket URL")
@click.option("-c", "--cookie", "cookies", multiple=True, help="Cookie as name=value (repeatable)")
def credentials_set(username: str, url: str, cookies: tuple[str, ...]):
    """Save connection parameters for a username."""
    entries = load_credentials_file()
    name = normalize_username(username)
    entries[name] = Credentials(
        socket_url=url,
        cookies=[Cookie(name=k, value=v) for k, v in _parse_cookies(cookies).items()],
    )
    save_credentials_file(entries)
    console.print(f"[green]Saved connection parameters for @{name}[/green]")
    console.print(f"[dim]Written to {get_settings().credentials_file}[/dim]")


@credentials.command("show")
def credentials_show():
    """List saved usernames."""
    entries = load_credentials_file()
    if not entries:
        console.print("[yellow]No saved credentials. Run `webcast credentials set`.[/yellow]")
        return
    table = Table(title=f"Saved credentials ({len(entries)})")
    table.add_column("Username", style="bold")
    table.add_column("Cookies")
    table.add_column("Socket URL", overflow="fold")
    for name, entry in sorted(entries.items()):
        table.add_row(name, ", ".join(c.name for c in entry.cookies), entry.socket_url)
    console.print(table)


@credentials.command("clear")
@click.argument("username", required=False)
def credentials_clear(username: Optional[str]):
    """Forget one username, or everything."""
    entries = load_credentials_file()
    if username:
        entries.pop(normalize_username(username), None)
    else:
        entries = {}
    save_credentials_file(entries)
    console.print("[green]Credentials cleared.[/green]")
