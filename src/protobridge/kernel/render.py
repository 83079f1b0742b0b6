"""Project a type graph into a JSON Schema document, per dialect.

Rendering is pure: the same graph and dialect always yield the same
document. The root message is rendered inline; every other message type is
rendered once into ``$defs`` and referenced from each use site, which keeps
recursive message families finite.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .types import (
    SIGNED_INTEGER_PATTERN,
    UNSIGNED_INTEGER_PATTERN,
    UNSIGNED_SCALARS,
    FieldNode,
    SchemaDialect,
    TypeGraph,
    TypeKind,
    TypeNode,
)

ONEOF_COMMENT = "In this schema, there is a oneOf group for every protobuf oneOf block in the message."

_ANY_JSON_TYPES = ["object", "array", "string", "number", "boolean", "null"]


def render_schema(graph: TypeGraph, dialect: SchemaDialect = SchemaDialect.CANONICAL) -> Dict[str, Any]:
    """Render the root message of ``graph`` as a JSON Schema object."""
    return _Renderer(graph, SchemaDialect(dialect)).render()


def definition_name(schema_ref: str) -> str:
    """Return the $defs key addressed by a local ``#/$defs/...`` reference."""
    prefix = "#/$defs/"
    if not schema_ref.startswith(prefix):
        raise ValueError(f"Not a local definition reference: {schema_ref}")
    return schema_ref[len(prefix):]


class _Renderer:
    def __init__(self, graph: TypeGraph, dialect: SchemaDialect):
        self.graph = graph
        self.dialect = dialect
        self.defs: Dict[str, Dict[str, Any]] = {}

    @property
    def canonical(self) -> bool:
        return self.dialect == SchemaDialect.CANONICAL

    def render(self) -> Dict[str, Any]:
        schema = self._message(self.graph.root_node)
        if self.defs:
            schema["$defs"] = {name: self.defs[name] for name in sorted(self.defs)}
        return schema

    def _ref(self, name: str) -> Dict[str, Any]:
        if name == self.graph.root:
            return {"$ref": "#"}
        if name not in self.defs:
            self.defs[name] = {}  # reserve the slot before descending
            self.defs[name] = self._message(self.graph.node(name))
        return {"$ref": f"#/$defs/{name}"}

    def _message(self, node: TypeNode) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for field in node.fields:
            properties[field.name] = self._field(field)
            if field.required:
                required.append(field.name)
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "required": required,
        }
        if self.canonical and node.oneofs:
            schema["allOf"] = [self._oneof_constraint(self.graph.node(group)) for group in node.oneofs]
        return schema

    def _oneof_constraint(self, group: TypeNode) -> Dict[str, Any]:
        return {
            "$comment": ONEOF_COMMENT,
            "oneOf": [
                {"properties": {member.name: self._field(member)}, "required": [member.name]}
                for member in group.members
            ],
        }

    def _field(self, field: FieldNode) -> Dict[str, Any]:
        schema = self._type(self.graph.node(field.type_name), nullable=field.proto3_optional)
        if field.repeated:
            return {"type": "array", "items": schema}
        return schema

    def _type(self, node: TypeNode, nullable: bool = False) -> Dict[str, Any]:
        kind = node.kind
        if kind == TypeKind.MESSAGE:
            return self._ref(node.name)
        if kind == TypeKind.MAP:
            return self._map(node)
        if kind == TypeKind.ENUM:
            schema = {"type": "string", "enum": list(node.enum_values)}
            return self._nullable(schema) if nullable else schema
        if kind == TypeKind.WKT_OPAQUE:
            return self._opaque(node)
        if kind == TypeKind.WKT_ANY:
            return self._any(node)
        schema = self._primitive(node)
        if nullable or node.nullable:
            return self._nullable(schema)
        return schema

    def _primitive(self, node: TypeNode) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": node.json_type}
        if node.format:
            schema["format"] = node.format
        if node.pattern:
            schema["pattern"] = node.pattern
        if node.content_encoding:
            if self.canonical:
                schema["contentEncoding"] = node.content_encoding
            else:
                schema["description"] = f"{node.content_encoding}-encoded bytes"
        if node.description:
            schema["description"] = node.description
        return schema

    def _nullable(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        # Restricted clients reject type unions; keep the single non-null type
        if not self.canonical:
            return schema
        nullable = dict(schema)
        nullable["type"] = [schema["type"], "null"]
        if "enum" in nullable:
            nullable["enum"] = list(nullable["enum"]) + [None]
        return nullable

    def _map_key(self, node: TypeNode) -> Dict[str, Any]:
        # Keys are always strings in JSON, whatever the declared scalar kind
        if node.json_type == "boolean":
            return {"type": "string", "enum": ["true", "false"]}
        if node.json_type == "integer":
            pattern = UNSIGNED_INTEGER_PATTERN if node.name in UNSIGNED_SCALARS else SIGNED_INTEGER_PATTERN
            return {"type": "string", "pattern": pattern}
        if node.pattern:
            return {"type": "string", "pattern": node.pattern}
        return {"type": "string"}

    def _map(self, node: TypeNode) -> Dict[str, Any]:
        key_schema = self._map_key(self.graph.node(node.key_type))
        value_schema = self._type(self.graph.node(node.value_type))
        if self.canonical:
            return {
                "type": "object",
                "propertyNames": key_schema,
                "additionalProperties": value_schema,
            }
        return {
            "type": "array",
            "description": "List of key-value pairs",
            "items": {
                "type": "object",
                "properties": {"key": key_schema, "value": value_schema},
                "required": ["key", "value"],
            },
        }

    def _opaque(self, node: TypeNode) -> Dict[str, Any]:
        if not self.canonical:
            return {
                "type": "string",
                "description": f"JSON-encoded {node.json_type or 'value'}",
            }
        if node.json_type == "object":
            return {"type": "object", "additionalProperties": True}
        if node.json_type == "array":
            return {"type": "array", "items": {}}
        return {"type": list(_ANY_JSON_TYPES)}

    def _any(self, node: TypeNode) -> Dict[str, Any]:
        if not self.canonical:
            return {
                "type": "string",
                "description": "JSON-encoded object with an @type URL and the message fields",
            }
        return {
            "type": "object",
            "description": node.description,
            "properties": {"@type": {"type": "string"}},
            "required": ["@type"],
            "additionalProperties": True,
        }
