"""CLI: webcast serve"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from webcast_relay.config import get_settings
from webcast_relay.credentials import LiveCheckProvider, StaticCredentialProvider
from webcast_relay.relay import RelayServer

console = Console()


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default: WEBCAST_RELAY_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: WEBCAST_RELAY_PORT)")
@click.option("--credentials-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Saved credentials (default: WEBCAST_CREDENTIALS_FILE)")
@click.option("--live-check/--no-live-check", default=True, help="Check room status before connecting")
def serve_cmd(host: Optional[str], port: Optional[int], credentials_file: Optional[Path], live_check: bool):
    """Run the Socket.IO relay server."""
    import uvicorn

    settings = get_settings()
    provider = StaticCredentialProvider.from_file(credentials_file)
    server = RelayServer(LiveCheckProvider(provider) if live_check else provider, settings=settings)

    bind_host = host or settings.relay_host
    bind_port = port or settings.relay_port
    console.print(f"[green]Relay listening on ws://{bind_host}:{bind_port}[/green]")
    uvicorn.run(server.asgi_app(), host=bind_host, port=bind_port, log_level="warning")
