"""
Live connector — username-scoped connection lifecycle.

States: idle → connecting → connected → disconnected → reconnect_scheduled →
connecting → ... → given_up, and idle again after a manual disconnect.

Every socket callback and every resumed coroutine checks the connector's
generation counter; anything started before the last disconnect or attempt is
discarded without emitting events.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

from webcast_relay.config import WebcastSettings, get_settings
from webcast_relay.credentials import CredentialProvider
from webcast_relay.errors import ConnectError, CredentialError, CredentialTimeoutError, WebcastError
from webcast_relay.models.events import ConnectorEvent, DomainEvent, WebcastEvent
from webcast_relay.models.session import ConnectionSession, SessionState, normalize_username
from webcast_relay.schema.registry import SchemaRegistry
from webcast_relay.transport.codec import FrameCodec
from webcast_relay.transport.http import RoomInfoClient
from webcast_relay.transport.websocket import SocketEvent, WebcastSocket

logger = logging.getLogger(__name__)

ConnectorHandler = Callable[[str, dict[str, Any]], None]
SocketFactory = Callable[[FrameCodec, WebcastSettings], WebcastSocket]

ACTIVE_STATES = (SessionState.CONNECTING, SessionState.CONNECTED)


def backoff_delay(attempt: int, base: float, max_exponent: int) -> float:
    """Exponential backoff: base * 2**attempt, flat once the exponent cap is hit."""
    return base * 2 ** min(attempt, max_exponent)


class LiveConnector:
    def __init__(
        self,
        credentials: CredentialProvider,
        settings: Optional[WebcastSettings] = None,
        registry: Optional[SchemaRegistry] = None,
        socket_factory: Optional[SocketFactory] = None,
        rooms: Optional[RoomInfoClient] = None,
    ):
        self._credentials = credentials
        self._settings = settings or get_settings()
        self._codec = FrameCodec(registry)
        self._socket_factory = socket_factory or WebcastSocket
        self._rooms = rooms
        self._owns_rooms = rooms is None
        self._session: Optional[ConnectionSession] = None
        self._socket: Optional[WebcastSocket] = None
        self._detach_socket: Optional[Callable[[], None]] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closing: set[asyncio.Task] = set()
        self._generation = 0
        self._last_error: Optional[WebcastError] = None
        self._event_handlers: list[ConnectorHandler] = []

    @property
    def session(self) -> Optional[ConnectionSession]:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def username(self) -> Optional[str]:
        return self._session.username if self._session else None

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def add_event_handler(self, handler: ConnectorHandler) -> Callable[[], None]:
        """Add an event handler. Returns a cleanup function."""
        self._event_handlers.append(handler)
        def remove() -> None:
            try:
                self._event_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def clear_event_handlers(self) -> None:
        self._event_handlers.clear()

    def _emit(self, event: str, data: dict[str, Any]) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(event, data)
            except Exception:
                logger.exception("Connector event handler failed for %r", event)

    # --- public lifecycle ---

    async def connect(self, username: str) -> None:
        """Start receiving `username`'s live feed.

        Raises the WebcastError of a failed first attempt after it has been
        reported as an `error` event and a retry has been scheduled.
        """
        name = normalize_username(username)
        session = self._session
        if session is not None and session.state in ACTIVE_STATES and session.username == name:
            logger.warning("Already %s to @%s, ignoring connect request", session.state.value, name)
            return
        if session is not None:
            await self.disconnect(prevent_reconnect=False)

        self._session = ConnectionSession(username=name, should_reconnect=True)
        await self._attempt()

    async def disconnect(self, prevent_reconnect: bool = True) -> None:
        socket = self._shutdown(prevent_reconnect)
        if socket is not None:
            await socket.close()

    async def aclose(self) -> None:
        """Disconnect for good and release the HTTP client this connector created."""
        await self.disconnect(prevent_reconnect=True)
        if self._owns_rooms and self._rooms is not None:
            await self._rooms.close()
            self._rooms = None

    async def fetch_gifts(self) -> list[dict[str, Any]]:
        """Gift catalogue of the connected room, also emitted as `giftsUpdated`."""
        session = self._session
        if not self.is_connected or not session.room_id:
            raise ConnectError("Cannot fetch gifts, connector is not connected to a room")
        if self._rooms is None:
            self._rooms = RoomInfoClient(self._settings)
        try:
            gifts = await self._rooms.fetch_gift_list(session.room_id)
        except WebcastError as e:
            logger.error("Gift fetch for @%s failed: %s", session.username, e)
            self._emit(ConnectorEvent.ERROR, {"username": session.username, "message": str(e), "code": e.code})
            raise
        logger.info("Fetched %d gifts for @%s", len(gifts), session.username)
        self._emit(ConnectorEvent.GIFTS_UPDATED, {"username": session.username, "gifts": gifts})
        return gifts

    # --- attempts ---

    async def _attempt(self) -> None:
        session = self._session
        if session is None:
            return
        self._cancel_reconnect_timer()
        self._generation += 1
        generation = self._generation

        previous = self._drop_socket()
        if previous is not None:
            await previous.close()

        session.state = SessionState.CONNECTING
        logger.info("Connecting to @%s (attempt %d)", session.username, session.reconnect_attempt)
        self._emit(ConnectorEvent.CONNECTING, {"username": session.username, "attempt": session.reconnect_attempt})

        error: Optional[WebcastError] = None
        try:
            credentials = await asyncio.wait_for(
                self._credentials.acquire(session.username),
                timeout=self._settings.credential_timeout,
            )
        except asyncio.TimeoutError:
            error = CredentialTimeoutError(session.username, self._settings.credential_timeout)
        except WebcastError as e:
            error = e
        except Exception as e:
            error = CredentialError(f"Credential acquisition for @{session.username} failed: {e}")

        if generation != self._generation:
            logger.debug("Discarding stale connect attempt for @%s", session.username)
            return
        if error is not None:
            self._fail(error)
            raise error

        session.socket_url = credentials.socket_url
        session.cookies = {cookie.name: cookie.value for cookie in credentials.cookies}
        session.room_id = credentials.room_id

        socket = self._socket_factory(self._codec, self._settings)
        self._socket = socket
        self._detach_socket = socket.add_event_handler(partial(self._on_socket_event, generation))
        await socket.open(credentials.socket_url, credentials.cookies)

        if generation == self._generation and session.state is not SessionState.CONNECTED:
            raise self._last_error or ConnectError(f"Could not open websocket for @{session.username}")

    def _fail(self, error: WebcastError) -> None:
        session = self._session
        session.state = SessionState.DISCONNECTED
        self._last_error = error
        logger.error("Failed to connect to @%s: %s", session.username, error)
        self._emit(ConnectorEvent.ERROR, {"username": session.username, "message": str(error), "code": error.code})
        if session.should_reconnect:
            self._schedule_reconnect()

    # --- socket events ---

    def _on_socket_event(self, generation: int, event: str, data: Any) -> None:
        session = self._session
        if generation != self._generation or session is None:
            return

        if event == SocketEvent.CONNECTED:
            session.state = SessionState.CONNECTED
            session.reconnect_attempt = 0
            self._cancel_reconnect_timer()
            logger.info("Connected to @%s", session.username)
            self._emit(ConnectorEvent.CONNECTED, {"username": session.username, "roomId": session.room_id})

        elif event == SocketEvent.DISCONNECTED:
            was_connected = session.state is SessionState.CONNECTED
            session.state = SessionState.DISCONNECTED
            self._drop_socket()
            if was_connected:
                logger.info("Connection to @%s lost: %s", session.username, data.get("reason"))
                self._emit(ConnectorEvent.DISCONNECTED, {"username": session.username, "manual": False})
            if session.should_reconnect:
                self._schedule_reconnect()

        elif event == SocketEvent.ERROR:
            error = data.get("error")
            self._last_error = error if isinstance(error, WebcastError) else ConnectError(data.get("message", ""))
            self._emit(ConnectorEvent.ERROR, {
                "username": session.username,
                "message": data.get("message", ""),
                "code": self._last_error.code,
            })

        elif event == SocketEvent.EVENT:
            self._on_domain_event(session, data)

    def _on_domain_event(self, session: ConnectionSession, event: DomainEvent) -> None:
        payload = {**event.payload, "username": session.username}
        self._emit(event.event_name, payload)

        if event.event_name == WebcastEvent.SOCIAL and payload.get("socialType"):
            self._emit(payload["socialType"], payload)

        action = payload.get("action")
        if event.event_name == WebcastEvent.CONTROL_ACTION and action in self._settings.stream_end_actions:
            session.should_reconnect = False
            logger.info("Stream for @%s ended (action %s)", session.username, action)
            self._emit(ConnectorEvent.STREAM_END, {"username": session.username, "action": action})
            socket = self._shutdown(prevent_reconnect=True)
            if socket is not None:
                self._close_later(socket)

    # --- reconnect policy ---

    def _schedule_reconnect(self) -> None:
        session = self._session
        if session is None or not session.should_reconnect:
            return
        if self._reconnect_handle is not None or session.state in (*ACTIVE_STATES, SessionState.RECONNECT_SCHEDULED):
            return

        if session.reconnect_attempt >= self._settings.max_reconnect_attempts:
            session.state = SessionState.GIVEN_UP
            session.should_reconnect = False
            logger.error("Giving up on @%s after %d reconnect attempts", session.username, session.reconnect_attempt)
            self._emit(ConnectorEvent.ERROR, {
                "username": session.username,
                "message": "Max reconnect attempts reached",
                "code": "reconnect_exhausted",
            })
            return

        session.reconnect_attempt += 1
        delay = backoff_delay(
            session.reconnect_attempt,
            self._settings.reconnect_base_delay,
            self._settings.reconnect_max_exponent,
        )
        session.state = SessionState.RECONNECT_SCHEDULED
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._fire_reconnect, self._generation)
        logger.info("Reconnecting to @%s in %.1fs (attempt %d)", session.username, delay, session.reconnect_attempt)
        self._emit(ConnectorEvent.RECONNECTING, {
            "username": session.username,
            "attempt": session.reconnect_attempt,
            "delay": delay,
        })

    def _fire_reconnect(self, generation: int) -> None:
        self._reconnect_handle = None
        session = self._session
        if generation != self._generation or session is None:
            return
        if not session.should_reconnect or session.state is not SessionState.RECONNECT_SCHEDULED:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self._attempt()
        except WebcastError as e:
            logger.debug("Reconnect attempt failed: %s", e)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # --- teardown ---

    def _shutdown(self, prevent_reconnect: bool) -> Optional[WebcastSocket]:
        """Synchronous part of a disconnect. Returns the socket still to close."""
        session = self._session
        if session is None:
            return None
        if prevent_reconnect:
            session.should_reconnect = False

        self._generation += 1
        self._cancel_reconnect_timer()
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        socket = self._drop_socket()

        was_connected = session.state is SessionState.CONNECTED
        was_idle = session.state is SessionState.IDLE
        session.state = SessionState.IDLE
        session.reconnect_attempt = 0
        if was_connected or (prevent_reconnect and not was_idle):
            logger.info("Disconnected from @%s", session.username)
            self._emit(ConnectorEvent.DISCONNECTED, {"username": session.username, "manual": prevent_reconnect})
        return socket

    def _drop_socket(self) -> Optional[WebcastSocket]:
        """Detach listeners and forget the socket; closing is up to the caller."""
        socket, detach = self._socket, self._detach_socket
        self._socket = None
        self._detach_socket = None
        if detach is not None:
            detach()
        return socket

    def _close_later(self, socket: WebcastSocket) -> None:
        task = asyncio.get_running_loop().create_task(socket.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
