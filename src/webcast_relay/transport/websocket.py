"""
Webcast socket client — owns exactly one upstream websocket.

Events dispatched to handlers (handler(event, data)):
  connected      {"url": str}
  disconnected   {"reason": str, "manual": bool}
  error          {"message": str, "error": WebcastError | Exception}
  event          DomainEvent, one per decoded sub-message, in frame order
  decode_error   {"message": str, "code": str}

The client never reconnects on its own; that is the connector's job.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Union
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake, InvalidURI

from webcast_relay.config import WebcastSettings, get_settings
from webcast_relay.errors import ConnectError, WebcastError
from webcast_relay.models.session import Cookie
from webcast_relay.transport.codec import FrameCodec

logger = logging.getLogger(__name__)

SocketHandler = Callable[[str, Any], None]
CookieInput = Union[Iterable[Cookie], Mapping[str, str]]

BROWSER_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate, br, zstd",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "websocket",
    "Sec-Fetch-Site": "same-site",
}


class SocketEvent:
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    EVENT = "event"
    DECODE_ERROR = "decode_error"


def filter_cookies(cookies: CookieInput, allow_list: Iterable[str]) -> dict[str, str]:
    """Keep only the session cookies the upgrade request needs."""
    allowed = set(allow_list)
    pairs = cookies.items() if isinstance(cookies, Mapping) else ((c.name, c.value) for c in cookies)
    return {name: value for name, value in pairs if name in allowed}


def cookie_header(cookies: Mapping[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def format_socket_url(url: str, forced_params: Mapping[str, str]) -> str:
    """Decode the query string and overwrite the parameters upstream insists on."""
    parts = urlsplit(url.strip())
    query: list[tuple[str, str]] = []
    forced: set[str] = set()
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key in forced_params:
            if key in forced:
                continue
            forced.add(key)
            value = forced_params[key]
        query.append((key, value))
    query.extend((key, value) for key, value in forced_params.items() if key not in forced)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query, quote_via=quote), ""))


def build_headers(
    settings: WebcastSettings,
    cookies: Mapping[str, str],
    extra_headers: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Browser-like upgrade headers. Host, Origin, User-Agent and the
    Sec-WebSocket-* handshake headers are set by the websocket library."""
    headers = {**BROWSER_HEADERS, "Accept-Language": settings.accept_language}
    if extra_headers:
        headers.update(extra_headers)
    if cookies:
        headers["Cookie"] = cookie_header(cookies)
    return headers


class WebcastSocket:
    def __init__(
        self,
        codec: Optional[FrameCodec] = None,
        settings: Optional[WebcastSettings] = None,
        connector: Callable[..., Any] = connect,
    ):
        self._codec = codec or FrameCodec()
        self._settings = settings or get_settings()
        self._connect = connector
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._pinger: Optional[asyncio.Task] = None
        self._generation = 0
        self._event_handlers: list[SocketHandler] = []

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def add_event_handler(self, handler: SocketHandler) -> Callable[[], None]:
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

    def _dispatch(self, event: str, data: Any) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(event, data)
            except Exception:
                logger.exception("Socket event handler failed for %r", event)

    async def open(
        self,
        url: str,
        cookies: CookieInput,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Open the upstream socket. Failures are reported as events, not raised."""
        if self._ws is not None:
            await self.close()
        self._generation += 1
        generation = self._generation

        target = format_socket_url(url, self._settings.forced_query_params)
        selected = filter_cookies(cookies, self._settings.cookie_allow_list)
        headers = build_headers(self._settings, selected, extra_headers)
        logger.debug("Opening websocket %s with cookies %s", target, sorted(selected))

        try:
            ws = await self._connect(
                target,
                origin=self._settings.origin,
                user_agent_header=self._settings.user_agent,
                additional_headers=headers,
                compression="deflate",
                open_timeout=self._settings.open_timeout,
                ping_interval=None,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            if generation != self._generation:
                return
            error = ConnectError(f"Websocket upgrade failed: {e}", details={"url": target})
            logger.warning("%s", error)
            self._dispatch(SocketEvent.ERROR, {"message": str(error), "error": error})
            self._dispatch(SocketEvent.DISCONNECTED, {"reason": str(e), "manual": False})
            return

        if generation != self._generation:
            await ws.close()
            return

        self._ws = ws
        self._dispatch(SocketEvent.CONNECTED, {"url": target})
        if generation != self._generation:
            return
        self._pinger = asyncio.create_task(self._keepalive(ws))
        self._reader = asyncio.create_task(self._read_loop(ws, generation))

    async def close(self) -> None:
        ws = self._ws
        self._generation += 1
        self._release()
        if ws is None:
            return
        try:
            await ws.close()
        except ConnectionClosed:
            pass
        self._dispatch(SocketEvent.DISCONNECTED, {"reason": "closed by client", "manual": True})

    def _release(self) -> None:
        """Drop the socket handle and stop background tasks."""
        self._ws = None
        current = asyncio.current_task()
        for task in (self._pinger, self._reader):
            if task is not None and task is not current:
                task.cancel()
        self._pinger = None
        self._reader = None

    async def _keepalive(self, ws: ClientConnection) -> None:
        try:
            while True:
                await asyncio.sleep(self._settings.ping_interval)
                await ws.ping()
        except ConnectionClosed:
            return

    async def _read_loop(self, ws: ClientConnection, generation: int) -> None:
        error: Optional[Exception] = None
        reason = "closed by server"
        try:
            async for raw in ws:
                if generation != self._generation:
                    return
                if isinstance(raw, str):
                    logger.debug("Ignoring text frame: %.80s", raw)
                    continue
                await self._handle_frame(ws, raw, generation)
        except ConnectionClosedError as e:
            error = e
            reason = str(e)
        except Exception as e:
            logger.exception("Websocket read loop failed")
            error = e
            reason = str(e)
        finally:
            if generation == self._generation:
                self._generation += 1
                self._release()
                if error is not None:
                    self._dispatch(SocketEvent.ERROR, {"message": str(error), "error": error})
                self._dispatch(SocketEvent.DISCONNECTED, {"reason": reason, "manual": False})

    async def _handle_frame(self, ws: ClientConnection, raw: bytes, generation: int) -> None:
        try:
            frame = await asyncio.to_thread(self._codec.decode_frame, raw)
        except WebcastError as e:
            logger.warning("Dropping undecodable frame (%d bytes): %s", len(raw), e)
            self._dispatch(SocketEvent.DECODE_ERROR, {"message": str(e), "code": e.code})
            return
        if generation != self._generation:
            return

        if frame.ack_id > 0:
            await self._send_ack(ws, frame.ack_id)

        for event in self._codec.to_events(frame.container):
            if generation != self._generation:
                return
            self._dispatch(SocketEvent.EVENT, event)

    async def _send_ack(self, ws: ClientConnection, ack_id: int) -> None:
        try:
            await ws.send(self._codec.encode_ack(ack_id))
        except ConnectionClosed as e:
            logger.debug("Ack %d dropped, socket closing: %s", ack_id, e)
