"""Type graph model: one TypeNode per qualified type name.

Nodes are frozen once built. Fields point at their target node by qualified
name, so recursive message families are plain name references and the graph
never has to hold a node that is still under construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Optional


SIGNED_INTEGER_PATTERN = r"^-?(0|[1-9]\d*)$"
UNSIGNED_INTEGER_PATTERN = r"^(0|[1-9]\d*)$"
DURATION_PATTERN = r"^-?[0-9]+(\.[0-9]+)?s$"

UNSIGNED_SCALARS = frozenset({"uint32", "fixed32", "uint64", "fixed64"})


class SchemaDialect(str, Enum):
    """Rendering mode; never part of the type graph itself."""
    CANONICAL = "canonical"
    RESTRICTED = "restricted"


class TypeKind(str, Enum):
    SCALAR = "scalar"
    ENUM = "enum"
    MESSAGE = "message"
    MAP = "map"
    ONEOF_GROUP = "oneof_group"
    WKT_TIMESTAMP = "wkt_timestamp"
    WKT_DURATION = "wkt_duration"
    WKT_FIELD_MASK = "wkt_field_mask"
    WKT_WRAPPER = "wkt_wrapper"
    WKT_OPAQUE = "wkt_opaque"  # Struct, Value, ListValue
    WKT_ANY = "wkt_any"


# Kinds whose value is arbitrary JSON and may arrive JSON-encoded in a string
EMBEDDED_JSON_KINDS = frozenset({TypeKind.WKT_OPAQUE, TypeKind.WKT_ANY})

# Kinds that never need a structural transform
PASSTHROUGH_KINDS = frozenset({
    TypeKind.SCALAR,
    TypeKind.ENUM,
    TypeKind.WKT_TIMESTAMP,
    TypeKind.WKT_DURATION,
    TypeKind.WKT_FIELD_MASK,
    TypeKind.WKT_WRAPPER,
})


@dataclass(frozen=True)
class FieldNode:
    """A declared field of a message (or a member of a oneof group)."""
    name: str
    number: int
    json_name: str
    type_name: str  # Qualified name of the target TypeNode
    repeated: bool = False
    proto3_optional: bool = False
    required: bool = False  # google.api.field_behavior = REQUIRED
    oneof: Optional[str] = None  # Qualified name of the oneof group, if any


@dataclass(frozen=True)
class TypeNode:
    """A distinct qualified type.

    Only the attributes relevant to ``kind`` are populated:
    message -> fields/oneofs, map -> key_type/value_type, oneof_group ->
    members, scalar and well-known kinds -> json_type plus rendering hints.
    """
    name: str
    kind: TypeKind
    fields: tuple[FieldNode, ...] = ()
    oneofs: tuple[str, ...] = ()
    members: tuple[FieldNode, ...] = ()
    key_type: Optional[str] = None
    value_type: Optional[str] = None
    json_type: Optional[str] = None  # "string", "integer", "number", "boolean", "object", "array"
    enum_values: tuple[str, ...] = ()
    nullable: bool = False
    format: Optional[str] = None
    pattern: Optional[str] = None
    content_encoding: Optional[str] = None
    description: Optional[str] = None

    def field(self, key: str) -> Optional[FieldNode]:
        """Look up a declared field by proto name or JSON name."""
        for field in self.fields:
            if field.name == key or field.json_name == key:
                return field
        return None


class TypeGraph:
    """Read-only, cycle-resolved type graph rooted at one message."""

    def __init__(self, root: str, nodes: Mapping[str, TypeNode]):
        if root not in nodes:
            raise KeyError(f"Root type {root} missing from graph")
        self._root = root
        self._nodes = MappingProxyType(dict(nodes))

    @property
    def root(self) -> str:
        return self._root

    @property
    def root_node(self) -> TypeNode:
        return self._nodes[self._root]

    @property
    def nodes(self) -> Mapping[str, TypeNode]:
        return self._nodes

    def node(self, name: str) -> TypeNode:
        return self._nodes[name]

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def message_names(self) -> list[str]:
        """Qualified names of all message-kind nodes, sorted."""
        return sorted(n.name for n in self._nodes.values() if n.kind == TypeKind.MESSAGE)

    def recursive_types(self) -> set[str]:
        """Message types that can reach themselves through field references."""
        recursive = set()
        for name in self.message_names():
            stack = list(self._targets(name))
            seen: set[str] = set()
            while stack:
                current = stack.pop()
                if current == name:
                    recursive.add(name)
                    break
                if current in seen:
                    continue
                seen.add(current)
                stack.extend(self._targets(current))
        return recursive

    def _targets(self, name: str) -> Iterator[str]:
        node = self._nodes[name]
        if node.kind == TypeKind.MESSAGE:
            for field in node.fields:
                yield field.type_name
        elif node.kind == TypeKind.MAP:
            yield node.value_type
        elif node.kind == TypeKind.ONEOF_GROUP:
            for member in node.members:
                yield member.type_name
