"""Schema registry: decode/encode against the built-in message layouts."""

import pytest

from webcast_relay.errors import SchemaError
from webcast_relay.schema import definitions as types
from webcast_relay.schema.definitions import FieldDef
from webcast_relay.schema.registry import SchemaRegistry, build_file_descriptor, default_registry


def test_default_registry_is_shared():
    assert default_registry() is default_registry()


def test_registry_knows_every_sub_message_type(registry):
    for type_name in types.SUB_MESSAGE_TYPES:
        assert registry.knows(type_name)
    assert not registry.knows("WebcastNotARealMessage")


@pytest.mark.parametrize("ack_id", [0, 1, 42, 2**63])
def test_ack_round_trip(registry, ack_id):
    raw = registry.encode(types.WEBSOCKET_ACK, {"type": "ack", "id": ack_id})
    decoded = registry.decode(types.WEBSOCKET_ACK, raw)
    assert decoded == {"id": ack_id, "type": "ack"}


def test_ack_requires_type_and_id(registry):
    with pytest.raises(SchemaError) as exc_info:
        registry.encode(types.WEBSOCKET_ACK, {"type": "ack"})
    assert exc_info.value.details["missing"] == ["id"]


def test_unknown_type_raises(registry):
    with pytest.raises(SchemaError, match="Unknown message type"):
        registry.decode("WebcastNotARealMessage", b"")
    with pytest.raises(SchemaError):
        registry.encode("WebcastNotARealMessage", {})


def test_malformed_bytes_raise(registry):
    # field 1, length-delimited, length 255 with nothing behind it
    with pytest.raises(SchemaError, match="Malformed"):
        registry.decode(types.RESPONSE, b"\x0a\xff")


def test_encode_rejects_unknown_field(registry):
    with pytest.raises(SchemaError, match="no field"):
        registry.encode(types.CHAT, {"comment": "hi", "bogus": 1})


def test_encode_rejects_wrong_value_type(registry):
    with pytest.raises(SchemaError, match="Invalid value"):
        registry.encode(types.LIKE, {"likeCount": "many"})


def test_unknown_field_numbers_are_ignored(registry):
    chat = registry.encode(types.CHAT, {"comment": "hello"})
    # field 99, varint 1
    decoded = registry.decode(types.CHAT, chat + b"\x98\x06\x01")
    assert decoded["comment"] == "hello"


def test_decode_includes_defaults(registry):
    decoded = registry.decode(types.CHAT, b"")
    assert decoded["comment"] == ""
    assert decoded["emotes"] == []
    assert decoded["user"] is None


def test_nested_messages_decode_to_dicts(registry):
    raw = registry.encode(types.CHAT, {
        "user": {"userId": 7, "nickname": "Ann", "badges": [{"badgeSceneType": 1}]},
        "comment": "hi",
    })
    decoded = registry.decode(types.CHAT, raw)
    assert decoded["user"]["userId"] == 7
    assert decoded["user"]["nickname"] == "Ann"
    assert decoded["user"]["badges"][0]["badgeSceneType"] == 1


def test_custom_layouts():
    layouts = {"Ping": (FieldDef("seq", 1, "uint32"), FieldDef("tags", 2, "string", repeated=True))}
    registry = SchemaRegistry(messages=layouts, required_fields={"Ping": ("seq",)})
    raw = registry.encode("Ping", {"seq": 3, "tags": ["a", "b"]})
    assert registry.decode("Ping", raw) == {"seq": 3, "tags": ["a", "b"]}
    assert registry.type_names == frozenset({"Ping"})


def test_dangling_type_reference_is_rejected():
    with pytest.raises(SchemaError, match="unknown type"):
        build_file_descriptor({"Broken": (FieldDef("child", 1, "Missing"),)})
