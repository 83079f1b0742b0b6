"""Tests for the type graph builder."""

import pytest

from protobridge.errors import SchemaGenerationError
from protobridge.kernel.builder import TypeGraphBuilder, build_type_graph
from protobridge.kernel.types import (
    SIGNED_INTEGER_PATTERN,
    UNSIGNED_INTEGER_PATTERN,
    TypeKind,
)


def test_message_fields_in_declaration_order(descriptor):
    graph = build_type_graph(descriptor("CreateExampleRequest"))
    root = graph.root_node

    assert graph.root == "example.v1.CreateExampleRequest"
    assert root.kind == TypeKind.MESSAGE
    assert [f.name for f in root.fields] == [
        "name", "type", "labels", "items", "text", "detail",
        "priority", "by_id", "blob", "big", "flags", "display_name",
    ]


def test_field_flags(descriptor):
    root = build_type_graph(descriptor("CreateExampleRequest")).root_node

    assert root.field("name").required is True
    assert root.field("type").required is False
    assert root.field("items").repeated is True
    assert root.field("labels").repeated is False  # maps are not plain repeated fields
    assert root.field("priority").proto3_optional is True
    assert root.field("display_name").json_name == "displayName"
    assert root.field("displayName") is root.field("display_name")


def test_oneof_groups_exclude_synthetic_optional(descriptor):
    graph = build_type_graph(descriptor("CreateExampleRequest"))
    root = graph.root_node

    assert root.oneofs == ("example.v1.CreateExampleRequest.payload",)
    group = graph.node("example.v1.CreateExampleRequest.payload")
    assert group.kind == TypeKind.ONEOF_GROUP
    assert [m.name for m in group.members] == ["text", "detail"]
    assert root.field("text").oneof == group.name
    assert root.field("priority").oneof is None


def test_scalar_mapping(descriptor):
    graph = build_type_graph(descriptor("CreateExampleRequest"))

    assert graph.node("string").json_type == "string"
    assert graph.node("int32").json_type == "integer"
    assert graph.node("bool").json_type == "boolean"
    blob = graph.node("bytes")
    assert blob.json_type == "string"
    assert blob.content_encoding == "base64"
    big = graph.node("uint64")
    assert big.json_type == "string"
    assert big.pattern == UNSIGNED_INTEGER_PATTERN
    assert graph.node("int64").pattern == SIGNED_INTEGER_PATTERN


def test_enum_values(descriptor):
    graph = build_type_graph(descriptor("CreateExampleRequest"))
    enum = graph.node("example.v1.ExampleType")

    assert enum.kind == TypeKind.ENUM
    assert enum.enum_values == ("EXAMPLE_TYPE_UNSPECIFIED", "EXAMPLE_TYPE_BASIC", "EXAMPLE_TYPE_ADVANCED")


def test_map_nodes(descriptor):
    graph = build_type_graph(descriptor("CreateExampleRequest"))
    root = graph.root_node

    by_id = graph.node(root.field("by_id").type_name)
    assert by_id.kind == TypeKind.MAP
    assert by_id.name == "example.v1.CreateExampleRequest.ByIdEntry"
    assert by_id.key_type == "int32"
    assert by_id.value_type == "example.v1.Nested"
    assert graph.node("example.v1.Nested").kind == TypeKind.MESSAGE


def test_well_known_kinds(descriptor):
    graph = build_type_graph(descriptor("WellKnown"))
    kinds = {f.name: graph.node(f.type_name).kind for f in graph.root_node.fields}

    assert kinds == {
        "created_at": TypeKind.WKT_TIMESTAMP,
        "ttl": TypeKind.WKT_DURATION,
        "update_mask": TypeKind.WKT_FIELD_MASK,
        "attributes": TypeKind.WKT_OPAQUE,
        "config": TypeKind.WKT_OPAQUE,
        "tags": TypeKind.WKT_OPAQUE,
        "payload": TypeKind.WKT_ANY,
        "nickname": TypeKind.WKT_WRAPPER,
        "quota": TypeKind.WKT_WRAPPER,
    }
    quota = graph.node("google.protobuf.Int64Value")
    assert quota.nullable is True
    assert quota.json_type == "string"
    assert graph.node("google.protobuf.Timestamp").format == "date-time"


def test_self_recursive_message_is_finite(descriptor):
    graph = build_type_graph(descriptor("TreeNode"))
    root = graph.root_node

    assert root.field("children").type_name == "example.v1.TreeNode"
    index = graph.node(root.field("index").type_name)
    assert index.value_type == "example.v1.TreeNode"
    assert graph.recursive_types() == {"example.v1.TreeNode"}


def test_mutually_recursive_messages(descriptor):
    graph = build_type_graph(descriptor("Ping"))

    assert graph.message_names() == ["example.v1.Ping", "example.v1.Pong"]
    assert graph.node("example.v1.Pong").field("ping").type_name == "example.v1.Ping"
    assert graph.recursive_types() == {"example.v1.Ping", "example.v1.Pong"}


def test_shared_cache_holds_one_node_per_name(descriptor):
    builder = TypeGraphBuilder()
    request = builder.build(descriptor("CreateExampleRequest"))
    response = builder.build(descriptor("CreateExampleResponse"))

    assert request.node("example.v1.Nested") is response.node("example.v1.Nested")
    assert request.node("string") is response.node("string")
    assert "example.v1.CreateExampleResponse" in builder.cache


def test_building_twice_reuses_cached_graph(descriptor):
    builder = TypeGraphBuilder()
    first = builder.build(descriptor("Ping"))
    second = builder.build(descriptor("Pong"))

    assert first.node("example.v1.Pong") is second.root_node
    assert set(first) == set(second)


def test_graph_is_read_only(descriptor):
    graph = build_type_graph(descriptor("Ping"))

    with pytest.raises(TypeError):
        graph.nodes["example.v1.Ping"] = None


def test_group_field_fails_and_leaves_cache_clean(descriptor):
    builder = TypeGraphBuilder()

    with pytest.raises(SchemaGenerationError) as exc_info:
        builder.build(descriptor("legacy.v1.Holder"))

    assert exc_info.value.message_name == "legacy.v1.Legacy"
    assert exc_info.value.field_name == "result"
    assert "legacy.v1.Legacy" not in builder.cache
    assert "legacy.v1.Holder" not in builder.cache

    # The builder is still usable for other messages
    graph = builder.build(descriptor("legacy.v1.Plain"))
    assert graph.root == "legacy.v1.Plain"
