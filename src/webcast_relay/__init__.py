"""
webcast-relay — live webcast feed decoder and pub/sub relay.

Decodes the binary (optionally gzip-compressed) protobuf frames of a live
stream's event socket and republishes normalized chat, gift, like, follow and
subscription events to subscribers.
"""

from webcast_relay.connector import LiveConnector
from webcast_relay.credentials import CredentialProvider, LiveCheckProvider, StaticCredentialProvider
from webcast_relay.errors import (
    WebcastError,
    SchemaError,
    DecompressionError,
    ConnectError,
    CredentialError,
    NotLiveError,
    CredentialTimeoutError,
)
from webcast_relay.models.events import ConnectorEvent, DomainEvent, WebcastEvent
from webcast_relay.models.session import Credentials, Cookie, SessionState
from webcast_relay.relay import RelayServer, RoomManager
from webcast_relay.schema.registry import SchemaRegistry, default_registry
from webcast_relay.transport.codec import FrameCodec
from webcast_relay.transport.websocket import WebcastSocket

__version__ = "0.1.0"
__all__ = [
    "LiveConnector",
    "CredentialProvider",
    "LiveCheckProvider",
    "StaticCredentialProvider",
    "WebcastError",
    "SchemaError",
    "DecompressionError",
    "ConnectError",
    "CredentialError",
    "NotLiveError",
    "CredentialTimeoutError",
    "ConnectorEvent",
    "DomainEvent",
    "WebcastEvent",
    "Credentials",
    "Cookie",
    "SessionState",
    "RelayServer",
    "RoomManager",
    "SchemaRegistry",
    "default_registry",
    "FrameCodec",
    "WebcastSocket",
]
