"""
Schema registry — builds protobuf message classes for the fixed webcast
message set once per process and converts between bytes and plain dicts.
"""

import logging
from functools import lru_cache
from typing import Any, Mapping, Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError, EncodeError, Message

from webcast_relay.errors import SchemaError
from webcast_relay.schema.definitions import MESSAGES, REQUIRED_FIELDS, SCALAR_KINDS, FieldDef

logger = logging.getLogger(__name__)

PACKAGE = "webcast"

_FDP = descriptor_pb2.FieldDescriptorProto
_SCALAR_TYPES = {
    "string": _FDP.TYPE_STRING,
    "bytes": _FDP.TYPE_BYTES,
    "bool": _FDP.TYPE_BOOL,
    "int32": _FDP.TYPE_INT32,
    "int64": _FDP.TYPE_INT64,
    "uint32": _FDP.TYPE_UINT32,
    "uint64": _FDP.TYPE_UINT64,
}


def build_file_descriptor(
    messages: Mapping[str, tuple[FieldDef, ...]],
    name: str = "webcast.proto",
) -> descriptor_pb2.FileDescriptorProto:
    """Translate the layout table into a proto3 FileDescriptorProto."""
    file_proto = descriptor_pb2.FileDescriptorProto(name=name, package=PACKAGE, syntax="proto3")
    for type_name, fields in messages.items():
        message_proto = file_proto.message_type.add(name=type_name)
        for field in fields:
            field_proto = message_proto.field.add(name=field.name, number=field.number)
            field_proto.label = _FDP.LABEL_REPEATED if field.repeated else _FDP.LABEL_OPTIONAL
            if field.kind in SCALAR_KINDS:
                field_proto.type = _SCALAR_TYPES[field.kind]
            elif field.kind in messages:
                field_proto.type = _FDP.TYPE_MESSAGE
                field_proto.type_name = f".{PACKAGE}.{field.kind}"
            else:
                raise SchemaError(f"{type_name}.{field.name} references unknown type {field.kind!r}")
    return file_proto


class SchemaRegistry:
    """Read-only registry of the webcast message layouts.

    Safe to share between connections: nothing is mutated after construction.
    """

    def __init__(
        self,
        messages: Mapping[str, tuple[FieldDef, ...]] = MESSAGES,
        required_fields: Optional[Mapping[str, tuple[str, ...]]] = None,
    ):
        self._layouts = dict(messages)
        self._required = dict(REQUIRED_FIELDS if required_fields is None else required_fields)
        self._pool = descriptor_pool.DescriptorPool()
        self._pool.AddSerializedFile(build_file_descriptor(self._layouts).SerializeToString())
        self._classes: dict[str, type[Message]] = {
            type_name: message_factory.GetMessageClass(
                self._pool.FindMessageTypeByName(f"{PACKAGE}.{type_name}")
            )
            for type_name in self._layouts
        }
        logger.debug("Schema registry loaded with %d message types", len(self._classes))

    @property
    def type_names(self) -> frozenset[str]:
        return frozenset(self._layouts)

    def knows(self, type_name: str) -> bool:
        return type_name in self._layouts

    def decode(self, type_name: str, data: bytes) -> dict[str, Any]:
        """Decode `data` as `type_name`. Unknown field numbers are ignored."""
        message = self._message_class(type_name)()
        try:
            message.ParseFromString(data)
        except (DecodeError, ValueError) as e:
            raise SchemaError(
                f"Malformed {type_name} payload: {e}",
                details={"type": type_name, "size": len(data)},
            ) from e
        return self._to_dict(type_name, message)

    def encode(self, type_name: str, obj: Mapping[str, Any]) -> bytes:
        message = self._message_class(type_name)()
        missing = [name for name in self._required.get(type_name, ()) if obj.get(name) is None]
        if missing:
            raise SchemaError(
                f"{type_name} is missing required field(s): {', '.join(missing)}",
                details={"type": type_name, "missing": missing},
            )
        self._fill(type_name, message, obj)
        try:
            return message.SerializeToString()
        except EncodeError as e:
            raise SchemaError(f"Cannot encode {type_name}: {e}") from e

    def _message_class(self, type_name: str) -> type[Message]:
        try:
            return self._classes[type_name]
        except KeyError:
            raise SchemaError(f"Unknown message type {type_name!r}", details={"type": type_name}) from None

    def _to_dict(self, type_name: str, message: Message) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for field in self._layouts[type_name]:
            value = getattr(message, field.name)
            if field.kind in SCALAR_KINDS:
                result[field.name] = list(value) if field.repeated else value
            elif field.repeated:
                result[field.name] = [self._to_dict(field.kind, item) for item in value]
            elif message.HasField(field.name):
                result[field.name] = self._to_dict(field.kind, value)
            else:
                result[field.name] = None
        return result

    def _fill(self, type_name: str, message: Message, obj: Mapping[str, Any]) -> None:
        fields = {field.name: field for field in self._layouts[type_name]}
        for key, value in obj.items():
            if value is None:
                continue
            field = fields.get(key)
            if field is None:
                raise SchemaError(f"{type_name} has no field {key!r}", details={"type": type_name, "field": key})
            try:
                if field.kind in SCALAR_KINDS:
                    if field.repeated:
                        getattr(message, key).extend(value)
                    else:
                        setattr(message, key, value)
                elif field.repeated:
                    container = getattr(message, key)
                    for item in value:
                        self._fill(field.kind, container.add(), item)
                else:
                    child = getattr(message, key)
                    child.SetInParent()
                    self._fill(field.kind, child, value)
            except (TypeError, ValueError, AttributeError) as e:
                raise SchemaError(
                    f"Invalid value for {type_name}.{key}: {e}",
                    details={"type": type_name, "field": key},
                ) from e


@lru_cache
def default_registry() -> SchemaRegistry:
    """Process-wide registry, built on first use."""
    return SchemaRegistry()
