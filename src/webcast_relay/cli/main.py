"""
Webcast relay CLI — `webcast` command.

Commands:
  webcast watch <username>        Print a live feed to the terminal
  webcast serve                   Run the Socket.IO relay server
  webcast decode <file>           Decode a captured binary frame
  webcast credentials <cmd>       Manage saved socket URLs and cookies
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install webcast-relay[cli]")

from webcast_relay import __version__

console = Console()


def _run(coro):
    return asyncio.run(coro)


def parse_cookie_options(values: tuple[str, ...]) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for value in values:
        name, sep, cookie_value = value.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected name=value, got {value!r}", param_hint="--cookie")
        cookies[name.strip()] = cookie_value.strip()
    return cookies


@click.group()
@click.version_option(__version__)
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def main(log_level: str):
    """Webcast relay CLI — decode and relay live stream events."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# Register subcommands from separate modules
from webcast_relay.cli.watch import watch_cmd, decode_cmd
from webcast_relay.cli.credentials import credentials
from webcast_relay.cli.serve import serve_cmd

main.add_command(watch_cmd)
main.add_command(decode_cmd)
main.add_command(credentials)
main.add_command(serve_cmd)


if __name__ == "__main__":
    main()
