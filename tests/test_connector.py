"""Live connector: state machine, reconnect policy and stream-end handling."""

import asyncio

import httpx
import pytest

from fakes import FakeConnector, FakeProvider, wait_until

from webcast_relay.config import WebcastSettings
from webcast_relay.connector import LiveConnector, backoff_delay
from webcast_relay.errors import ConnectError, CredentialError, CredentialTimeoutError
from webcast_relay.models.session import SessionState
from webcast_relay.schema import definitions as types
from webcast_relay.transport.http import RoomInfoClient
from webcast_relay.transport.websocket import WebcastSocket


def make_connector(settings, provider=None, upstream=None, rooms=None):
    upstream = upstream or FakeConnector()
    connector = LiveConnector(
        provider or FakeProvider(),
        settings=settings,
        socket_factory=lambda codec, s: WebcastSocket(codec, s, connector=upstream),
        rooms=rooms,
    )
    return connector, upstream


def _names(events):
    return [name for name, _ in events]


def test_backoff_is_non_decreasing_and_capped():
    delays = [backoff_delay(attempt, 5.0, 4) for attempt in range(12)]
    assert delays == sorted(delays)
    assert delays[0] == 5.0
    assert delays[1] == 10.0
    assert max(delays) == 80.0
    assert delays[-1] == 80.0


@pytest.mark.asyncio
async def test_connect_reaches_connected(settings, recorder):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)

    await connector.connect("@SomeOne")

    assert connector.state is SessionState.CONNECTED
    assert connector.is_connected
    assert connector.username == "someone"
    assert connector.session.room_id == "7001"
    assert connector.session.cookies == {"ttwid": "a"}
    assert _names(recorder.events) == ["connecting", "connected"]
    assert recorder.events[1][1] == {"username": "someone", "roomId": "7001"}
    await connector.disconnect()


@pytest.mark.asyncio
async def test_connect_is_noop_when_already_connected(settings):
    provider = FakeProvider()
    connector, upstream = make_connector(settings, provider)
    await connector.connect("someone")
    await connector.connect("@someone")

    assert len(provider.calls) == 1
    assert len(upstream.calls) == 1
    await connector.disconnect()


@pytest.mark.asyncio
async def test_connect_to_other_user_replaces_session(settings, recorder):
    connector, upstream = make_connector(settings)
    await connector.connect("first")
    first = upstream.connection
    connector.add_event_handler(recorder)

    await connector.connect("second")

    assert first.closed
    assert connector.username == "second"
    assert connector.is_connected
    assert _names(recorder.events) == ["disconnected", "connecting", "connected"]
    await connector.disconnect()


@pytest.mark.asyncio
async def test_domain_events_carry_username(settings, recorder, make_frame):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    upstream.connection.incoming.put_nowait(make_frame([
        (types.CHAT, {"comment": "hi", "user": {"uniqueId": "viewer"}}),
        (types.SOCIAL, {"event": {"eventDetails": {"displayType": "pm_main_follow_message_viewer_2"}}}),
    ], ack_id=3))
    await wait_until(lambda: "follow" in _names(recorder.events))

    names = _names(recorder.events)
    assert names[2:] == ["chat", "social", "follow"]
    chat = recorder.events[2][1]
    assert chat["username"] == "someone"
    assert chat["uniqueId"] == "viewer"
    await connector.disconnect()


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(settings, recorder):
    provider = FakeProvider(error=CredentialError("capture failed"))
    connector, _ = make_connector(settings, provider)
    connector.add_event_handler(recorder)

    with pytest.raises(CredentialError):
        await connector.connect("someone")
    await wait_until(lambda: connector.state is SessionState.GIVEN_UP)

    assert len(provider.calls) == settings.max_reconnect_attempts + 1
    assert _names(recorder.events).count("reconnecting") == settings.max_reconnect_attempts
    assert recorder.events[-1][1]["code"] == "reconnect_exhausted"
    assert connector.session.should_reconnect is False

    await asyncio.sleep(0.1)
    assert len(provider.calls) == settings.max_reconnect_attempts + 1


@pytest.mark.asyncio
async def test_reconnect_delays_follow_backoff(settings, recorder):
    connector, _ = make_connector(settings, FakeProvider(error=CredentialError("nope")))
    connector.add_event_handler(recorder)

    with pytest.raises(CredentialError):
        await connector.connect("someone")
    await wait_until(lambda: connector.state is SessionState.GIVEN_UP)

    delays = [data["delay"] for name, data in recorder.events if name == "reconnecting"]
    assert delays == [
        backoff_delay(attempt, settings.reconnect_base_delay, settings.reconnect_max_exponent)
        for attempt in range(1, settings.max_reconnect_attempts + 1)
    ]


@pytest.mark.asyncio
async def test_credential_timeout(recorder):
    settings = WebcastSettings(credential_timeout=0.05, reconnect_base_delay=5.0)
    connector, _ = make_connector(settings, FakeProvider(delay=1.0))
    connector.add_event_handler(recorder)

    with pytest.raises(CredentialTimeoutError):
        await connector.connect("someone")

    assert connector.state is SessionState.RECONNECT_SCHEDULED
    assert recorder.events[1][1]["code"] == "credential_timeout"
    await connector.disconnect()


@pytest.mark.asyncio
async def test_upgrade_failure_schedules_reconnect(settings, recorder):
    connector, upstream = make_connector(settings, upstream=FakeConnector(error=OSError("refused")))
    connector.add_event_handler(recorder)

    with pytest.raises(ConnectError):
        await connector.connect("someone")

    assert _names(recorder.events)[:3] == ["connecting", "error", "reconnecting"]
    await connector.disconnect()


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect(recorder):
    settings = WebcastSettings(reconnect_base_delay=0.05, max_reconnect_attempts=5)
    provider = FakeProvider(error=CredentialError("capture failed"))
    connector, _ = make_connector(settings, provider)
    connector.add_event_handler(recorder)

    with pytest.raises(CredentialError):
        await connector.connect("someone")
    assert connector.state is SessionState.RECONNECT_SCHEDULED

    await connector.disconnect(prevent_reconnect=True)
    seen = len(recorder.events)
    await asyncio.sleep(0.3)

    assert len(provider.calls) == 1
    assert len(recorder.events) == seen
    assert recorder.events[-1] == ("disconnected", {"username": "someone", "manual": True})
    assert connector.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_server_close_triggers_reconnect(settings, recorder):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    upstream.connection.incoming.put_nowait(None)
    await wait_until(lambda: _names(recorder.events).count("connected") == 2)

    assert _names(recorder.events) == [
        "connecting", "connected", "disconnected", "reconnecting", "connecting", "connected",
    ]
    assert connector.session.reconnect_attempt == 0
    assert len(upstream.connections) == 2
    await connector.disconnect()


@pytest.mark.asyncio
async def test_stream_end_stops_reconnecting(settings, recorder, make_frame):
    connector, upstream = make_connector(settings)
    flag_at_stream_end = []

    def on_event(event, data):
        if event == "streamEnd":
            flag_at_stream_end.append(connector.session.should_reconnect)

    connector.add_event_handler(recorder)
    connector.add_event_handler(on_event)
    await connector.connect("someone")
    connection = upstream.connection

    connection.incoming.put_nowait(make_frame([(types.CONTROL, {"action": 3})], ack_id=11))
    await wait_until(lambda: connection.closed)
    await asyncio.sleep(0.1)

    assert flag_at_stream_end == [False]
    assert _names(recorder.events) == ["connecting", "connected", "controlAction", "streamEnd", "disconnected"]
    assert connector.state is SessionState.IDLE
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_other_control_actions_keep_streaming(settings, recorder, make_frame):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    upstream.connection.incoming.put_nowait(make_frame([(types.CONTROL, {"action": 1})]))
    await wait_until(lambda: "controlAction" in _names(recorder.events))

    assert "streamEnd" not in _names(recorder.events)
    assert connector.is_connected
    await connector.disconnect()


@pytest.mark.asyncio
async def test_stale_socket_events_are_ignored(settings, recorder):
    connector, upstream = make_connector(settings)
    await connector.connect("someone")
    old = upstream.connection
    await connector.disconnect(prevent_reconnect=True)
    connector.add_event_handler(recorder)

    old.incoming.put_nowait(None)
    await asyncio.sleep(0.05)

    assert recorder.events == []
    assert connector.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_disconnect_during_credential_acquisition(settings, recorder):
    upstream = FakeConnector()
    connector, _ = make_connector(settings, FakeProvider(delay=0.2), upstream=upstream)
    connector.add_event_handler(recorder)

    pending = asyncio.create_task(connector.connect("someone"))
    await asyncio.sleep(0.05)
    await connector.disconnect()
    await pending

    assert recorder.events == [
        ("connecting", {"username": "someone", "attempt": 0}),
        ("disconnected", {"username": "someone", "manual": True}),
    ]
    assert upstream.calls == []
    assert connector.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_disconnect_during_socket_open(settings, recorder):
    upstream = FakeConnector(delay=0.2)
    connector, _ = make_connector(settings, upstream=upstream)
    connector.add_event_handler(recorder)

    pending = asyncio.create_task(connector.connect("someone"))
    await asyncio.sleep(0.05)
    await connector.disconnect()
    await pending
    await asyncio.sleep(0.05)

    assert _names(recorder.events) == ["connecting", "disconnected"]
    assert upstream.connection.closed
    assert connector.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_stream_end_on_action_four_after_bad_gzip_frame(settings, recorder, make_frame, registry):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")
    connection = upstream.connection

    connection.incoming.put_nowait(registry.encode(
        types.WEBSOCKET_MESSAGE, {"id": 1, "type": "msg", "binary": b"\x1f\x8b\x08garbage"},
    ))
    connection.incoming.put_nowait(make_frame([
        (types.CHAT, {"comment": "bye"}),
        (types.CONTROL, {"action": 4}),
    ], ack_id=2))
    await wait_until(lambda: connection.closed)
    await asyncio.sleep(0.1)

    assert _names(recorder.events) == [
        "connecting", "connected", "chat", "controlAction", "streamEnd", "disconnected",
    ]
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_custom_stream_end_actions(recorder, make_frame):
    settings = WebcastSettings(stream_end_actions={7}, reconnect_base_delay=0.01)
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    upstream.connection.incoming.put_nowait(make_frame([(types.CONTROL, {"action": 3})]))
    await wait_until(lambda: "controlAction" in _names(recorder.events))
    assert connector.is_connected

    upstream.connection.incoming.put_nowait(make_frame([(types.CONTROL, {"action": 7})]))
    await wait_until(lambda: "streamEnd" in _names(recorder.events))
    assert connector.state is SessionState.IDLE
    assert connector.session.should_reconnect is False


@pytest.mark.asyncio
async def test_fetch_gifts_requires_connection(settings):
    connector, _ = make_connector(settings)
    with pytest.raises(ConnectError):
        await connector.fetch_gifts()


@pytest.mark.asyncio
async def test_fetch_gifts_emits_gifts_updated(settings, recorder):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["room_id"])
        return httpx.Response(200, json={"data": {"gifts": [{"id": 1, "name": "Rose"}]}})

    rooms = RoomInfoClient(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    connector, _ = make_connector(settings, rooms=rooms)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    gifts = await connector.fetch_gifts()

    assert gifts == [{"id": 1, "name": "Rose"}]
    assert seen == ["7001"]
    assert recorder.events[-1] == ("giftsUpdated", {"username": "someone", "gifts": gifts})
    await connector.aclose()
    await rooms.close()


@pytest.mark.asyncio
async def test_fetch_gifts_failure_is_reported(settings, recorder):
    rooms = RoomInfoClient(
        settings,
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
    )
    connector, _ = make_connector(settings, rooms=rooms)
    connector.add_event_handler(recorder)
    await connector.connect("someone")

    with pytest.raises(CredentialError, match="HTTP 500"):
        await connector.fetch_gifts()

    assert recorder.events[-1][0] == "error"
    assert connector.is_connected
    await connector.aclose()
    await rooms.close()


@pytest.mark.asyncio
async def test_aclose_after_stream_end_emits_nothing_more(settings, recorder, make_frame):
    connector, upstream = make_connector(settings)
    connector.add_event_handler(recorder)
    await connector.connect("someone")
    upstream.connection.incoming.put_nowait(make_frame([(types.CONTROL, {"action": 3})]))
    await wait_until(lambda: "disconnected" in _names(recorder.events))

    await connector.aclose()

    assert _names(recorder.events).count("disconnected") == 1
