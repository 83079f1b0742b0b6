"""Build the cycle-resolved type graph of a message descriptor."""

from __future__ import annotations

import logging
from typing import Dict, List, MutableMapping, Optional

from google.api import field_behavior_pb2
from google.protobuf import descriptor_pb2
from google.protobuf.descriptor import Descriptor, FieldDescriptor

from protobridge.errors import SchemaGenerationError
from .types import (
    DURATION_PATTERN,
    SIGNED_INTEGER_PATTERN,
    UNSIGNED_INTEGER_PATTERN,
    FieldNode,
    TypeGraph,
    TypeKind,
    TypeNode,
)

logger = logging.getLogger(__name__)


# Field type number -> scalar TypeNode. Nodes are named after the proto keyword.
_SCALARS: Dict[int, TypeNode] = {
    FieldDescriptor.TYPE_DOUBLE: TypeNode("double", TypeKind.SCALAR, json_type="number"),
    FieldDescriptor.TYPE_FLOAT: TypeNode("float", TypeKind.SCALAR, json_type="number"),
    FieldDescriptor.TYPE_INT32: TypeNode("int32", TypeKind.SCALAR, json_type="integer"),
    FieldDescriptor.TYPE_SINT32: TypeNode("sint32", TypeKind.SCALAR, json_type="integer"),
    FieldDescriptor.TYPE_SFIXED32: TypeNode("sfixed32", TypeKind.SCALAR, json_type="integer"),
    FieldDescriptor.TYPE_UINT32: TypeNode("uint32", TypeKind.SCALAR, json_type="integer"),
    FieldDescriptor.TYPE_FIXED32: TypeNode("fixed32", TypeKind.SCALAR, json_type="integer"),
    # 64-bit integers travel as strings so JSON number decoders keep precision
    FieldDescriptor.TYPE_INT64: TypeNode("int64", TypeKind.SCALAR, json_type="string", pattern=SIGNED_INTEGER_PATTERN),
    FieldDescriptor.TYPE_SINT64: TypeNode("sint64", TypeKind.SCALAR, json_type="string", pattern=SIGNED_INTEGER_PATTERN),
    FieldDescriptor.TYPE_SFIXED64: TypeNode("sfixed64", TypeKind.SCALAR, json_type="string", pattern=SIGNED_INTEGER_PATTERN),
    FieldDescriptor.TYPE_UINT64: TypeNode("uint64", TypeKind.SCALAR, json_type="string", pattern=UNSIGNED_INTEGER_PATTERN),
    FieldDescriptor.TYPE_FIXED64: TypeNode("fixed64", TypeKind.SCALAR, json_type="string", pattern=UNSIGNED_INTEGER_PATTERN),
    FieldDescriptor.TYPE_BOOL: TypeNode("bool", TypeKind.SCALAR, json_type="boolean"),
    FieldDescriptor.TYPE_STRING: TypeNode("string", TypeKind.SCALAR, json_type="string"),
    FieldDescriptor.TYPE_BYTES: TypeNode("bytes", TypeKind.SCALAR, json_type="string", content_encoding="base64"),
}

_WELL_KNOWN: Dict[str, TypeNode] = {
    "google.protobuf.Timestamp": TypeNode(
        "google.protobuf.Timestamp", TypeKind.WKT_TIMESTAMP, json_type="string", format="date-time",
        description="RFC 3339 timestamp, e.g. 2024-01-01T00:00:00Z",
    ),
    "google.protobuf.Duration": TypeNode(
        "google.protobuf.Duration", TypeKind.WKT_DURATION, json_type="string", pattern=DURATION_PATTERN,
        description="Duration in seconds with an 's' suffix, e.g. 1.5s",
    ),
    "google.protobuf.FieldMask": TypeNode(
        "google.protobuf.FieldMask", TypeKind.WKT_FIELD_MASK, json_type="string",
        description="Comma-separated list of field paths",
    ),
    "google.protobuf.Struct": TypeNode("google.protobuf.Struct", TypeKind.WKT_OPAQUE, json_type="object"),
    "google.protobuf.ListValue": TypeNode("google.protobuf.ListValue", TypeKind.WKT_OPAQUE, json_type="array"),
    "google.protobuf.Value": TypeNode("google.protobuf.Value", TypeKind.WKT_OPAQUE),
    "google.protobuf.Any": TypeNode(
        "google.protobuf.Any", TypeKind.WKT_ANY, json_type="object",
        description="Message of any type, identified by its @type URL",
    ),
    "google.protobuf.DoubleValue": TypeNode(
        "google.protobuf.DoubleValue", TypeKind.WKT_WRAPPER, json_type="number", nullable=True),
    "google.protobuf.FloatValue": TypeNode(
        "google.protobuf.FloatValue", TypeKind.WKT_WRAPPER, json_type="number", nullable=True),
    "google.protobuf.Int64Value": TypeNode(
        "google.protobuf.Int64Value", TypeKind.WKT_WRAPPER, json_type="string", nullable=True,
        pattern=SIGNED_INTEGER_PATTERN),
    "google.protobuf.UInt64Value": TypeNode(
        "google.protobuf.UInt64Value", TypeKind.WKT_WRAPPER, json_type="string", nullable=True,
        pattern=UNSIGNED_INTEGER_PATTERN),
    "google.protobuf.Int32Value": TypeNode(
        "google.protobuf.Int32Value", TypeKind.WKT_WRAPPER, json_type="integer", nullable=True),
    "google.protobuf.UInt32Value": TypeNode(
        "google.protobuf.UInt32Value", TypeKind.WKT_WRAPPER, json_type="integer", nullable=True),
    "google.protobuf.BoolValue": TypeNode(
        "google.protobuf.BoolValue", TypeKind.WKT_WRAPPER, json_type="boolean", nullable=True),
    "google.protobuf.StringValue": TypeNode(
        "google.protobuf.StringValue", TypeKind.WKT_WRAPPER, json_type="string", nullable=True),
    "google.protobuf.BytesValue": TypeNode(
        "google.protobuf.BytesValue", TypeKind.WKT_WRAPPER, json_type="string", nullable=True,
        content_encoding="base64"),
}


def is_well_known(full_name: str) -> bool:
    return full_name in _WELL_KNOWN


def _is_repeated(field: FieldDescriptor) -> bool:
    # protobuf 6.x exposes is_repeated and deprecates label
    is_repeated = getattr(field, "is_repeated", None)
    if is_repeated is not None:
        return bool(is_repeated)
    return field.label == FieldDescriptor.LABEL_REPEATED


def _is_map_entry(message: Optional[Descriptor]) -> bool:
    return message is not None and message.GetOptions().map_entry


def _is_required(field: FieldDescriptor) -> bool:
    behaviors = field.GetOptions().Extensions[field_behavior_pb2.field_behavior]
    return field_behavior_pb2.REQUIRED in behaviors


def _index_proto3_optional(file_descriptor) -> Dict[str, set[str]]:
    """Map message full name -> names of fields declared with proto3 `optional`.

    Read from the serialized file so it works with every protobuf backend.
    """
    proto = descriptor_pb2.FileDescriptorProto()
    file_descriptor.CopyToProto(proto)
    index: Dict[str, set[str]] = {}
    prefix = f"{proto.package}." if proto.package else ""
    pending = [(prefix + message.name, message) for message in proto.message_type]
    while pending:
        full_name, message = pending.pop()
        index[full_name] = {f.name for f in message.field if f.proto3_optional}
        pending.extend((f"{full_name}.{nested.name}", nested) for nested in message.nested_type)
    return index


class TypeGraphBuilder:
    """Walks message descriptors into TypeNodes, one node per qualified name.

    A builder may be shared across messages: nodes built for one message are
    reused by the next. Each build works on a scratch table that is merged
    into the shared cache only when the whole message compiled, so a failed
    message never leaves half-built nodes behind.
    """

    def __init__(self, cache: Optional[MutableMapping[str, TypeNode]] = None):
        self._cache: MutableMapping[str, TypeNode] = cache if cache is not None else {}
        self._optional_by_file: Dict[str, Dict[str, set[str]]] = {}

    @property
    def cache(self) -> MutableMapping[str, TypeNode]:
        return self._cache

    def build(self, descriptor: Descriptor) -> TypeGraph:
        """Build the graph rooted at ``descriptor``.

        Raises:
            SchemaGenerationError: if a field uses an unsupported wire type
        """
        scratch: Dict[str, TypeNode] = {}
        self._visit_message(descriptor, scratch, [])
        for name, node in scratch.items():
            self._cache.setdefault(name, node)
        logger.debug("Built type graph for %s (%d new nodes)", descriptor.full_name, len(scratch))
        return TypeGraph(descriptor.full_name, self._reachable(descriptor.full_name))

    def _lookup(self, name: str, scratch: Dict[str, TypeNode]) -> Optional[TypeNode]:
        node = scratch.get(name)
        if node is None:
            node = self._cache.get(name)
        return node

    def _store(self, node: TypeNode, scratch: Dict[str, TypeNode]) -> str:
        if self._lookup(node.name, scratch) is None:
            scratch[node.name] = node
        return node.name

    def _proto3_optional_fields(self, descriptor: Descriptor) -> set[str]:
        file_descriptor = descriptor.file
        index = self._optional_by_file.get(file_descriptor.name)
        if index is None:
            index = _index_proto3_optional(file_descriptor)
            self._optional_by_file[file_descriptor.name] = index
        return index.get(descriptor.full_name, set())

    def _visit_message(self, descriptor: Descriptor, scratch: Dict[str, TypeNode], stack: List[str]) -> str:
        name = descriptor.full_name
        if name in stack:
            # Back-edge: reference the shared node, finalized when the stack unwinds
            return name
        if self._lookup(name, scratch) is not None:
            return name

        stack.append(name)
        try:
            optional_names = self._proto3_optional_fields(descriptor)
            fields = tuple(
                self._visit_field(descriptor, field, field.name in optional_names, scratch, stack)
                for field in descriptor.fields
            )
            groups = []
            for oneof in descriptor.oneofs:
                members = tuple(f for f in fields if f.oneof == oneof.full_name)
                if not members:
                    continue  # synthetic oneof of a proto3 optional field
                self._store(TypeNode(oneof.full_name, TypeKind.ONEOF_GROUP, members=members), scratch)
                groups.append(oneof.full_name)
            scratch[name] = TypeNode(name, TypeKind.MESSAGE, fields=fields, oneofs=tuple(groups))
        finally:
            stack.pop()
        return name

    def _visit_field(
        self,
        owner: Descriptor,
        field: FieldDescriptor,
        proto3_optional: bool,
        scratch: Dict[str, TypeNode],
        stack: List[str],
    ) -> FieldNode:
        type_name = self._resolve_type(owner, field, scratch, stack)
        is_map = _is_map_entry(field.message_type)
        oneof = None
        if field.containing_oneof is not None and not proto3_optional:
            oneof = field.containing_oneof.full_name
        return FieldNode(
            name=field.name,
            number=field.number,
            json_name=field.json_name,
            type_name=type_name,
            repeated=_is_repeated(field) and not is_map,
            proto3_optional=proto3_optional,
            required=_is_required(field),
            oneof=oneof,
        )

    def _resolve_type(
        self,
        owner: Descriptor,
        field: FieldDescriptor,
        scratch: Dict[str, TypeNode],
        stack: List[str],
    ) -> str:
        field_type = field.type
        if field_type == FieldDescriptor.TYPE_MESSAGE:
            message = field.message_type
            if _is_map_entry(message):
                return self._visit_map(owner, message, scratch, stack)
            well_known = _WELL_KNOWN.get(message.full_name)
            if well_known is not None:
                return self._store(well_known, scratch)
            return self._visit_message(message, scratch, stack)
        if field_type == FieldDescriptor.TYPE_ENUM:
            enum = field.enum_type
            node = TypeNode(
                enum.full_name,
                TypeKind.ENUM,
                json_type="string",
                enum_values=tuple(value.name for value in enum.values),
            )
            return self._store(node, scratch)
        if field_type == FieldDescriptor.TYPE_GROUP:
            raise SchemaGenerationError(owner.full_name, "group-encoded fields are not supported", field.name)
        scalar = _SCALARS.get(field_type)
        if scalar is None:
            raise SchemaGenerationError(owner.full_name, f"unsupported field type {field_type}", field.name)
        return self._store(scalar, scratch)

    def _visit_map(self, owner: Descriptor, entry: Descriptor, scratch: Dict[str, TypeNode], stack: List[str]) -> str:
        if self._lookup(entry.full_name, scratch) is not None:
            return entry.full_name
        key_field = entry.fields_by_name["key"]
        value_field = entry.fields_by_name["value"]
        key_type = self._resolve_type(owner, key_field, scratch, stack)
        value_type = self._resolve_type(owner, value_field, scratch, stack)
        node = TypeNode(entry.full_name, TypeKind.MAP, key_type=key_type, value_type=value_type)
        return self._store(node, scratch)

    def _reachable(self, root: str) -> Dict[str, TypeNode]:
        nodes: Dict[str, TypeNode] = {}
        stack = [root]
        while stack:
            name = stack.pop()
            if name in nodes:
                continue
            node = self._cache[name]
            nodes[name] = node
            if node.kind == TypeKind.MESSAGE:
                stack.extend(f.type_name for f in node.fields)
                stack.extend(node.oneofs)
            elif node.kind == TypeKind.MAP:
                stack.extend([node.key_type, node.value_type])
            elif node.kind == TypeKind.ONEOF_GROUP:
                stack.extend(m.type_name for m in node.members)
        return nodes


def build_type_graph(
    descriptor: Descriptor,
    cache: Optional[MutableMapping[str, TypeNode]] = None,
) -> TypeGraph:
    """Build the type graph of one message (see TypeGraphBuilder)."""
    return TypeGraphBuilder(cache).build(descriptor)
