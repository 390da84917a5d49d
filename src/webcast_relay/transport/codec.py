"""
Frame codec — turns raw socket bytes into a decoded response container and
acknowledgement ids into raw ack frames.

Failures are frame-local: a bad sub-message is skipped, a bad frame raises a
WebcastError that the socket client logs before moving on to the next frame.
"""

import gzip
import logging
import zlib
from typing import Optional

from webcast_relay.errors import DecompressionError, SchemaError
from webcast_relay.models.events import MESSAGE_TYPE_EVENTS, DomainEvent
from webcast_relay.models.frame import DecodedFrame, ResponseContainer, SubMessage, WebsocketParam
from webcast_relay.normalize import normalize_payload
from webcast_relay.schema import definitions as types
from webcast_relay.schema.registry import SchemaRegistry, default_registry

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
MSG_KIND = "msg"
ACK_KIND = "ack"


def is_gzip(payload: bytes) -> bool:
    return payload[:2] == GZIP_MAGIC


def decompress(payload: bytes) -> bytes:
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionError(f"Malformed gzip payload ({len(payload)} bytes): {e}") from e


class FrameCodec:
    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self._registry = registry or default_registry()

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def decode_frame(self, raw: bytes) -> DecodedFrame:
        envelope = self._registry.decode(types.WEBSOCKET_MESSAGE, raw)
        ack_id = envelope.get("id") or 0
        kind = envelope.get("type") or ""
        if kind != MSG_KIND:
            return DecodedFrame(ack_id=ack_id, kind=kind, container=None)

        payload = envelope.get("binary") or b""
        if is_gzip(payload):
            payload = decompress(payload)

        response = self._registry.decode(types.RESPONSE, payload)
        messages = [self._decode_sub_message(item) for item in response["messages"]]
        ws_param = response.get("wsParam")
        container = ResponseContainer(
            messages=messages,
            cursor=response.get("cursor") or "",
            fetch_interval_ms=response.get("fetchInterval") or 0,
            server_timestamp=response.get("serverTimestamp") or 0,
            ws_params=WebsocketParam(**ws_param) if ws_param else None,
        )
        return DecodedFrame(ack_id=ack_id, kind=kind, container=container)

    def _decode_sub_message(self, item: dict) -> SubMessage:
        message = SubMessage(type=item.get("type") or "", binary=item.get("binary") or b"")
        if message.type not in types.SUB_MESSAGE_TYPES:
            logger.debug("Skipping unsupported sub-message type %r", message.type)
            return message
        try:
            message.decoded = self._registry.decode(message.type, message.binary)
        except SchemaError as e:
            logger.warning("Failed to decode %s sub-message: %s", message.type, e)
        return message

    def encode_ack(self, ack_id: int) -> bytes:
        return self._registry.encode(types.WEBSOCKET_ACK, {"type": ACK_KIND, "id": ack_id})

    def to_events(self, container: Optional[ResponseContainer]) -> list[DomainEvent]:
        """One normalized DomainEvent per decoded sub-message, in received order."""
        if container is None:
            return []
        events: list[DomainEvent] = []
        for message in container.messages:
            event_name = MESSAGE_TYPE_EVENTS.get(message.type)
            if message.decoded is None or event_name is None:
                continue
            try:
                payload = normalize_payload(message.type, message.decoded)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Failed to normalize %s sub-message: %s", message.type, e)
                continue
            events.append(DomainEvent(event_name=event_name, message_type=message.type, payload=payload))
        return events
