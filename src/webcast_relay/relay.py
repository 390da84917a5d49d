"""
Relay — fans decoded events for a username out to its subscribers.

RoomManager owns one LiveConnector per subscribed username; RelayServer exposes
it over Socket.IO, with one room per username.

Client protocol (Socket.IO):
  emit "subscribe"   {"username": "someone"}
  emit "unsubscribe" {"username": "someone"}   (optional; disconnect also unsubscribes)
  receive <eventName> {"username": ..., "data": {...}}
  receive "status:<lifecycle>" for connecting/connected/disconnected/reconnecting/error/streamEnd
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import socketio

from webcast_relay.config import WebcastSettings, get_settings
from webcast_relay.connector import LiveConnector
from webcast_relay.credentials import CredentialProvider
from webcast_relay.errors import WebcastError
from webcast_relay.models.events import LIFECYCLE_EVENTS
from webcast_relay.models.session import SessionState, normalize_username
from webcast_relay.schema.registry import SchemaRegistry, default_registry

logger = logging.getLogger(__name__)

Publisher = Callable[[str, str, dict[str, Any]], Awaitable[None]]
ConnectorFactory = Callable[[str], LiveConnector]

STATUS_PREFIX = "status:"

# Connector states that no longer retry on their own
RESTARTABLE_STATES = (SessionState.IDLE, SessionState.GIVEN_UP)


def relay_event_name(event: str) -> str:
    return f"{STATUS_PREFIX}{event}" if event in LIFECYCLE_EVENTS else event


class RoomManager:
    def __init__(
        self,
        publisher: Publisher,
        connector_factory: ConnectorFactory,
    ):
        self._publisher = publisher
        self._connector_factory = connector_factory
        self._connectors: dict[str, LiveConnector] = {}
        self._subscriptions: dict[str, set[str]] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def rooms(self) -> dict[str, frozenset[str]]:
        return {name: frozenset(subs) for name, subs in self._subscriptions.items()}

    def connector(self, username: str) -> Optional[LiveConnector]:
        return self._connectors.get(normalize_username(username))

    def subscribe(self, subscriber_id: str, username: str) -> None:
        name = normalize_username(username)
        self._subscriptions.setdefault(name, set()).add(subscriber_id)
        existing = self._connectors.get(name)
        if existing is not None:
            if existing.username is not None and existing.state in RESTARTABLE_STATES:
                logger.info("Connector for @%s is %s, restarting", name, existing.state.value)
                self._spawn(self._start(existing, name))
            return

        logger.info("No active connector for @%s, creating one", name)
        connector = self._connector_factory(name)
        self._connectors[name] = connector
        connector.add_event_handler(lambda event, data: self.publish(name, event, data))
        self._spawn(self._start(connector, name))

    def unsubscribe(self, subscriber_id: str, username: Optional[str] = None) -> None:
        """Remove `subscriber_id` from one room, or from every room when no username is given."""
        names = [normalize_username(username)] if username else list(self._subscriptions)
        for name in names:
            subscribers = self._subscriptions.get(name)
            if not subscribers or subscriber_id not in subscribers:
                continue
            subscribers.discard(subscriber_id)
            logger.info("Subscriber %s left @%s", subscriber_id, name)
            if not subscribers:
                self._close_room(name)

    def publish(self, username: str, event: str, payload: dict[str, Any]) -> None:
        """Best-effort broadcast of one event to the username's subscribers."""
        if not self._subscriptions.get(username):
            return
        self._spawn(self._deliver(username, relay_event_name(event), payload))

    async def close(self) -> None:
        for name in list(self._connectors):
            self._close_room(name)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _close_room(self, name: str) -> None:
        logger.info("Room @%s is empty, disconnecting", name)
        self._subscriptions.pop(name, None)
        connector = self._connectors.pop(name, None)
        if connector is not None:
            connector.clear_event_handlers()
            self._spawn(connector.aclose())

    async def _start(self, connector: LiveConnector, name: str) -> None:
        try:
            await connector.connect(name)
        except WebcastError as e:
            # already published as status:error; the connector schedules its own retry
            logger.info("Initial connect to @%s failed: %s", name, e)

    async def _deliver(self, username: str, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._publisher(username, event, payload)
        except Exception as e:
            logger.error(f"Publish failed for {event} to @{username}: {e}")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class RelayServer:
    """Socket.IO front-end for a RoomManager."""

    def __init__(
        self,
        credentials: CredentialProvider,
        settings: Optional[WebcastSettings] = None,
        registry: Optional[SchemaRegistry] = None,
        sio: Optional[socketio.AsyncServer] = None,
    ):
        self._settings = settings or get_settings()
        self._registry = registry or default_registry()
        self._credentials = credentials
        self.sio = sio or socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")
        self.rooms = RoomManager(self._publish, self._make_connector)
        self._register_handlers()

    def asgi_app(self) -> socketio.ASGIApp:
        return socketio.ASGIApp(self.sio, on_shutdown=self.close)

    async def close(self) -> None:
        await self.rooms.close()
        await self._credentials.aclose()

    def _make_connector(self, username: str) -> LiveConnector:
        return LiveConnector(self._credentials, settings=self._settings, registry=self._registry)

    async def _publish(self, username: str, event: str, payload: dict[str, Any]) -> None:
        await self.sio.emit(event, {"username": username, "data": payload}, to=username)

    def _register_handlers(self) -> None:
        sio = self.sio

        @sio.event
        async def connect(sid: str, environ: dict, auth: Any = None) -> None:
            logger.info("Relay client %s connected", sid)

        @sio.event
        async def subscribe(sid: str, data: Any) -> dict[str, Any]:
            username = data.get("username") if isinstance(data, dict) else None
            if not username or not isinstance(username, str):
                return {"ok": False, "error": 'Invalid message format. Use {"username": "someone"}'}
            name = normalize_username(username)
            await sio.enter_room(sid, name)
            self.rooms.subscribe(sid, name)
            connector = self.rooms.connector(name)
            return {"ok": True, "username": name, "state": connector.state.value if connector else None}

        @sio.event
        async def unsubscribe(sid: str, data: Any) -> dict[str, Any]:
            username = data.get("username") if isinstance(data, dict) else None
            if not username or not isinstance(username, str):
                return {"ok": False, "error": "username required"}
            name = normalize_username(username)
            await sio.leave_room(sid, name)
            self.rooms.unsubscribe(sid, name)
            return {"ok": True, "username": name}

        @sio.event
        async def disconnect(sid: str, *_args: Any) -> None:
            logger.info("Relay client %s disconnected", sid)
            self.rooms.unsubscribe(sid)

