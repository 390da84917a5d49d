"""
Credential providers — supply `{socket_url, cookies}` for a username.

How the socket URL and cookies are captured (browser automation, request
interception) lives outside this package; these providers only hand over the
result.
"""

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Union

from webcast_relay.config import get_settings
from webcast_relay.errors import CredentialError, NotLiveError
from webcast_relay.models.session import Credentials, normalize_username
from webcast_relay.transport.http import RoomInfoClient

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def acquire(self, username: str) -> Credentials:
        ...

    async def aclose(self) -> None:
        ...


def load_credentials_file(path: Optional[Path] = None) -> dict[str, Credentials]:
    path = path or get_settings().credentials_file
    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        raise CredentialError(f"Invalid credentials file {path}: {e}") from e
    return {normalize_username(name): Credentials.model_validate(entry) for name, entry in raw.items()}


def save_credentials_file(entries: Mapping[str, Credentials], path: Optional[Path] = None) -> None:
    path = path or get_settings().credentials_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({name: c.model_dump() for name, c in entries.items()}, indent=2))


class StaticCredentialProvider:
    """Serves pre-captured credentials, keyed by normalized username."""

    def __init__(self, entries: Mapping[str, Union[Credentials, dict[str, Any]]]):
        self._entries = {
            normalize_username(name): c if isinstance(c, Credentials) else Credentials.model_validate(c)
            for name, c in entries.items()
        }

    @classmethod
    def from_file(cls, path: Optional[Path] = None) -> "StaticCredentialProvider":
        return cls(load_credentials_file(path))

    async def acquire(self, username: str) -> Credentials:
        try:
            return self._entries[normalize_username(username)]
        except KeyError:
            raise CredentialError(
                f"No connection parameters for @{username}",
                code="credentials_missing",
                details={"username": username},
            ) from None

    async def aclose(self) -> None:
        pass


class LiveCheckProvider:
    """Refuses to hand out credentials unless the room is currently live."""

    def __init__(self, inner: CredentialProvider, rooms: Optional[RoomInfoClient] = None):
        self._inner = inner
        self._owns_rooms = rooms is None
        self._rooms = rooms or RoomInfoClient()

    async def acquire(self, username: str) -> Credentials:
        info = await self._rooms.fetch_room_info(username)
        if not info.is_live:
            raise NotLiveError(username, info.status)
        credentials = await self._inner.acquire(username)
        logger.info("@%s is live in room %s", username, info.room_id)
        return credentials.model_copy(update={"room_id": info.room_id or credentials.room_id})

    async def aclose(self) -> None:
        await self._inner.aclose()
        if self._owns_rooms:
            await self._rooms.close()
