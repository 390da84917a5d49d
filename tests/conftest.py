"""Shared fixtures: a process-wide registry and helpers that build wire frames."""

import gzip
from typing import Any, Callable

import pytest

from webcast_relay.config import WebcastSettings
from webcast_relay.schema import definitions as types
from webcast_relay.schema.registry import SchemaRegistry, default_registry


@pytest.fixture
def registry() -> SchemaRegistry:
    return default_registry()


@pytest.fixture
def settings() -> WebcastSettings:
    return WebcastSettings(
        ping_interval=60.0,
        credential_timeout=1.0,
        reconnect_base_delay=0.01,
        reconnect_max_exponent=2,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def make_frame(registry: SchemaRegistry) -> Callable[..., bytes]:
    """Build a raw socket frame from (type, payload dict or bytes) pairs."""

    def build(
        messages: list[tuple[str, Any]],
        ack_id: int = 0,
        kind: str = "msg",
        gzipped: bool = False,
    ) -> bytes:
        items = []
        for type_name, payload in messages:
            binary = payload if isinstance(payload, bytes) else registry.encode(type_name, payload)
            items.append({"type": type_name, "binary": binary})
        response = registry.encode(types.RESPONSE, {"messages": items, "cursor": "c-1"})
        if gzipped:
            response = gzip.compress(response)
        return registry.encode(types.WEBSOCKET_MESSAGE, {"id": ack_id, "type": kind, "binary": response})

    return build


@pytest.fixture
def recorder():
    """Event handler that records (event, data) pairs on `.events`."""
    events: list[tuple[str, Any]] = []

    def record(event, data):
        events.append((event, data))

    record.events = events
    return record
