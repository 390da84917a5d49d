"""CLI: webcast watch, webcast decode"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from webcast_relay.connector import LiveConnector
from webcast_relay.credentials import CredentialProvider, LiveCheckProvider, StaticCredentialProvider
from webcast_relay.errors import WebcastError
from webcast_relay.models.events import LIFECYCLE_EVENTS, ConnectorEvent, WebcastEvent
from webcast_relay.models.session import Cookie, Credentials, normalize_username
from webcast_relay.transport.codec import FrameCodec

console = Console()


def _run(coro):
    from webcast_relay.cli.main import _run
    return _run(coro)


def _parse_cookies(values):
    from webcast_relay.cli.main import parse_cookie_options
    return parse_cookie_options(values)


def _provider(username: str, url: Optional[str], cookies: tuple[str, ...], live_check: bool) -> CredentialProvider:
    if url:
        entry = Credentials(
            socket_url=url,
            cookies=[Cookie(name=k, value=v) for k, v in _parse_cookies(cookies).items()],
        )
        provider: CredentialProvider = StaticCredentialProvider({username: entry})
    else:
        provider = StaticCredentialProvider.from_file()
    return LiveCheckProvider(provider) if live_check else provider


def _who(data: dict[str, Any]) -> str:
    return escape(str(data.get("nickname") or data.get("uniqueId") or data.get("userId") or "?"))


def render_event(event: str, data: dict[str, Any]) -> Optional[str]:
    """Rich markup line for one event, or None for events not shown."""
    if event == WebcastEvent.CHAT:
        return f"[cyan]{_who(data)}[/cyan]: {escape(data.get('comment') or '')}"
    if event == WebcastEvent.GIFT:
        if data.get("giftType") == 1 and not data.get("repeatEnd"):
            return None  # streak still running
        name = escape(data.get("giftName") or f"gift {data.get('giftId')}")
        return f"[magenta]{_who(data)}[/magenta] sent {name} x{data.get('repeatCount') or 1}"
    if event == WebcastEvent.LIKE:
        return f"[red]{_who(data)}[/red] liked x{data.get('likeCount')} (total {data.get('totalLikeCount')})"
    if event == WebcastEvent.MEMBER:
        return f"[dim]{_who(data)} joined[/dim]"
    if event in (WebcastEvent.FOLLOW, WebcastEvent.SHARE):
        verb = "followed" if event == WebcastEvent.FOLLOW else "shared the stream"
        return f"[green]{_who(data)}[/green] {verb}"
    if event == WebcastEvent.ROOM_USER:
        return f"[dim]viewers: {data.get('viewerCount')}[/dim]"
    if event == WebcastEvent.QUESTION_NEW:
        return f"[yellow]{_who(data)} asks:[/yellow] {escape(data.get('questionText') or '')}"
    if event == WebcastEvent.SUBSCRIBE:
        return f"[green]{_who(data)} subscribed[/green]"
    if event in LIFECYCLE_EVENTS:
        detail = data.get("message") or data.get("delay") or data.get("roomId") or ""
        return f"[dim]{escape('[' + event + '] ' + str(detail))}[/dim]"
    return None


@click.command("watch")
@click.argument("username")
@click.option("--url", default=None, help="Captured socket URL (default: saved credentials)")
@click.option("-c", "--cookie", "cookies", multiple=True, help="Cookie as name=value (repeatable)")
@click.option("--live-check/--no-live-check", default=True, help="Check room status before connecting")
@click.option("--json-output", "--json", is_flag=True)
def watch_cmd(username: str, url: Optional[str], cookies: tuple[str, ...], live_check: bool, json_output: bool):
    """Print a user's live feed until the stream ends (Ctrl+C to exit)."""
    name = normalize_username(username)

    async def _watch():
        provider = _provider(name, url, cookies, live_check)
        connector = LiveConnector(provider)
        done = asyncio.Event()

        def on_event(event: str, data: dict[str, Any]) -> None:
            if json_output:
                click.echo(json.dumps({"event": event, "data": data}, default=str))
            else:
                line = render_event(event, data)
                if line:
                    console.print(line)
            if event == ConnectorEvent.STREAM_END or data.get("code") == "reconnect_exhausted":
                done.set()

        connector.add_event_handler(on_event)
        try:
            await connector.connect(name)
        except WebcastError as e:
            if not json_output:
                console.print(f"[yellow]First attempt failed ({e.code}), retrying in the background[/yellow]")
        try:
            await done.wait()
        finally:
            await connector.aclose()
            await provider.aclose()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        pass


@click.command("decode")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json-output", "--json", is_flag=True)
def decode_cmd(path: Path, json_output: bool):
    """Decode a captured binary socket frame."""
    codec = FrameCodec()
    try:
        frame = codec.decode_frame(path.read_bytes())
    except WebcastError as e:
        raise click.ClickException(f"{e.code}: {e}")
    events = codec.to_events(frame.container)

    if json_output:
        click.echo(json.dumps({
            "ackId": frame.ack_id,
            "kind": frame.kind,
            "messages": [m.type for m in frame.container.messages] if frame.container else [],
            "events": [{"event": e.event_name, "data": e.payload} for e in events],
        }, indent=2, default=str))
        return

    console.print(f"[bold]Frame[/bold] kind={frame.kind!r} ack_id={frame.ack_id}")
    if frame.container is None:
        return
    table = Table(title=f"Sub-messages ({len(frame.container.messages)})")
    table.add_column("Type", style="bold")
    table.add_column("Bytes")
    table.add_column("Decoded")
    for message in frame.container.messages:
        table.add_row(message.type, str(len(message.binary)), "yes" if message.decoded is not None else "no")
    console.print(table)
    for event in events:
        line = render_event(event.event_name, event.payload)
        console.print(line or f"[dim]{event.event_name}[/dim]")
