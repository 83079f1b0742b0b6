"""Pytest configuration for tests.

No sys.path hacks - tests import from the installed protobridge package.
Test messages are described with descriptor_pb2 and registered once in the
default descriptor pool, the same way generated *_pb2 modules register
theirs.
"""

import pytest
from google.api import field_behavior_pb2
from google.protobuf import (  # noqa: F401  (registers the well-known files)
    any_pb2,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    field_mask_pb2,
    message_factory,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)

from protobridge.registry import SchemaRegistry

F = descriptor_pb2.FieldDescriptorProto

EXAMPLE_PACKAGE = "example.v1"
LEGACY_PACKAGE = "legacy.v1"


def _camel(name):
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _field(name, number, field_type, label=F.LABEL_OPTIONAL, type_name=None,
           oneof_index=None, proto3_optional=False, required=False):
    field = F(name=name, number=number, type=field_type, label=label, json_name=_camel(name))
    if type_name:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    if proto3_optional:
        field.proto3_optional = True
    if required:
        field.options.Extensions[field_behavior_pb2.field_behavior].append(field_behavior_pb2.REQUIRED)
    return field


def _message(name, *fields):
    message = descriptor_pb2.DescriptorProto(name=name)
    message.field.extend(fields)
    return message


def _map(owner, field_name, number, key_type, value_type, value_type_name=None):
    """Add a map field (and its entry type) to ``owner``."""
    entry_name = "".join(part.capitalize() for part in field_name.split("_")) + "Entry"
    entry = _message(
        entry_name,
        _field("key", 1, key_type),
        _field("value", 2, value_type, type_name=value_type_name),
    )
    entry.options.map_entry = True
    owner.nested_type.append(entry)
    owner.field.append(_field(
        field_name, number, F.TYPE_MESSAGE, label=F.LABEL_REPEATED,
        type_name=f".{EXAMPLE_PACKAGE}.{owner.name}.{entry_name}",
    ))


def build_example_file():
    """example.v1: tool-facing messages covering every type kind."""
    pkg = f".{EXAMPLE_PACKAGE}"
    proto = descriptor_pb2.FileDescriptorProto(
        name="tests/example.proto", package=EXAMPLE_PACKAGE, syntax="proto3"
    )
    proto.dependency.extend([
        "google/api/field_behavior.proto",
        "google/protobuf/any.proto",
        "google/protobuf/duration.proto",
        "google/protobuf/field_mask.proto",
        "google/protobuf/struct.proto",
        "google/protobuf/timestamp.proto",
        "google/protobuf/wrappers.proto",
    ])

    example_type = proto.enum_type.add(name="ExampleType")
    for number, value in enumerate(["EXAMPLE_TYPE_UNSPECIFIED", "EXAMPLE_TYPE_BASIC", "EXAMPLE_TYPE_ADVANCED"]):
        example_type.value.add(name=value, number=number)

    proto.message_type.append(_message(
        "Nested",
        _field("note", 1, F.TYPE_STRING),
        _field("count", 2, F.TYPE_INT64),
    ))

    request = _message(
        "CreateExampleRequest",
        _field("name", 1, F.TYPE_STRING, required=True),
        _field("type", 2, F.TYPE_ENUM, type_name=f"{pkg}.ExampleType"),
    )
    _map(request, "labels", 3, F.TYPE_STRING, F.TYPE_STRING)
    request.field.extend([
        _field("items", 4, F.TYPE_MESSAGE, label=F.LABEL_REPEATED, type_name=f"{pkg}.Nested"),
        _field("text", 5, F.TYPE_STRING, oneof_index=0),
        _field("detail", 6, F.TYPE_MESSAGE, type_name=f"{pkg}.Nested", oneof_index=0),
        _field("priority", 7, F.TYPE_INT32, oneof_index=1, proto3_optional=True),
    ])
    _map(request, "by_id", 8, F.TYPE_INT32, F.TYPE_MESSAGE, f"{pkg}.Nested")
    request.field.extend([
        _field("blob", 9, F.TYPE_BYTES),
        _field("big", 10, F.TYPE_UINT64),
    ])
    _map(request, "flags", 11, F.TYPE_BOOL, F.TYPE_STRING)
    request.field.append(_field("display_name", 12, F.TYPE_STRING))
    request.oneof_decl.add(name="payload")
    request.oneof_decl.add(name="_priority")
    proto.message_type.append(request)

    response = _message(
        "CreateExampleResponse",
        _field("id", 1, F.TYPE_STRING),
    )
    _map(response, "labels", 2, F.TYPE_STRING, F.TYPE_STRING)
    response.field.extend([
        _field("metadata", 3, F.TYPE_MESSAGE, type_name=".google.protobuf.Struct"),
        _field("summary", 4, F.TYPE_MESSAGE, type_name=f"{pkg}.Nested"),
    ])
    proto.message_type.append(response)

    proto.message_type.append(_message(
        "WellKnown",
        _field("created_at", 1, F.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp"),
        _field("ttl", 2, F.TYPE_MESSAGE, type_name=".google.protobuf.Duration"),
        _field("update_mask", 3, F.TYPE_MESSAGE, type_name=".google.protobuf.FieldMask"),
        _field("attributes", 4, F.TYPE_MESSAGE, type_name=".google.protobuf.Struct"),
        _field("config", 5, F.TYPE_MESSAGE, type_name=".google.protobuf.Value"),
        _field("tags", 6, F.TYPE_MESSAGE, type_name=".google.protobuf.ListValue"),
        _field("payload", 7, F.TYPE_MESSAGE, type_name=".google.protobuf.Any"),
        _field("nickname", 8, F.TYPE_MESSAGE, type_name=".google.protobuf.StringValue"),
        _field("quota", 9, F.TYPE_MESSAGE, type_name=".google.protobuf.Int64Value"),
    ))

    tree = _message(
        "TreeNode",
        _field("label", 1, F.TYPE_STRING),
        _field("children", 2, F.TYPE_MESSAGE, label=F.LABEL_REPEATED, type_name=f"{pkg}.TreeNode"),
    )
    _map(tree, "index", 3, F.TYPE_STRING, F.TYPE_MESSAGE, f"{pkg}.TreeNode")
    proto.message_type.append(tree)

    proto.message_type.append(_message(
        "Ping",
        _field("pong", 1, F.TYPE_MESSAGE, type_name=f"{pkg}.Pong"),
        _field("tag", 2, F.TYPE_STRING),
    ))
    proto.message_type.append(_message(
        "Pong",
        _field("ping", 1, F.TYPE_MESSAGE, type_name=f"{pkg}.Ping"),
    ))

    proto.message_type.append(_message(
        "Tool",
        _field("name", 1, F.TYPE_STRING),
        _field("description", 2, F.TYPE_STRING),
    ))
    server = _message("McpServer", _field("name", 1, F.TYPE_STRING))
    _map(server, "labels", 2, F.TYPE_STRING, F.TYPE_STRING)
    _map(server, "tools", 3, F.TYPE_STRING, F.TYPE_MESSAGE, f"{pkg}.Tool")
    server.field.append(_field("config", 4, F.TYPE_MESSAGE, type_name=".google.protobuf.Value"))
    proto.message_type.append(server)
    proto.message_type.append(_message(
        "UpdateMcpServerRequest",
        _field("mcp_server", 1, F.TYPE_MESSAGE, type_name=f"{pkg}.McpServer"),
        _field("update_mask", 2, F.TYPE_MESSAGE, type_name=".google.protobuf.FieldMask"),
    ))

    service = proto.service.add(name="ExampleService")
    service.method.add(
        name="CreateExample",
        input_type=f"{pkg}.CreateExampleRequest",
        output_type=f"{pkg}.CreateExampleResponse",
    )
    service.method.add(
        name="UpdateMcpServer",
        input_type=f"{pkg}.UpdateMcpServerRequest",
        output_type=f"{pkg}.McpServer",
    )
    return proto


def build_legacy_file():
    """legacy.v1: a proto2 message with a group field, which cannot be compiled."""
    proto = descriptor_pb2.FileDescriptorProto(
        name="tests/legacy.proto", package=LEGACY_PACKAGE, syntax="proto2"
    )
    legacy = _message(
        "Legacy",
        _field("result", 1, F.TYPE_GROUP, type_name=f".{LEGACY_PACKAGE}.Legacy.Result"),
        _field("name", 3, F.TYPE_STRING),
    )
    legacy.nested_type.append(_message("Result", _field("url", 2, F.TYPE_STRING)))
    proto.message_type.append(legacy)
    proto.message_type.append(_message(
        "Holder",
        _field("legacy", 1, F.TYPE_MESSAGE, type_name=f".{LEGACY_PACKAGE}.Legacy"),
    ))
    proto.message_type.append(_message(
        "Plain",
        _field("title", 1, F.TYPE_STRING),
    ))
    return proto


def build_job_file():
    """cli.v1: a self-contained file, written out as a descriptor set for the CLI."""
    proto = descriptor_pb2.FileDescriptorProto(name="tests/job.proto", package="cli.v1", syntax="proto3")
    job = _message("Job", _field("id", 1, F.TYPE_STRING))
    entry = _message("LabelsEntry", _field("key", 1, F.TYPE_STRING), _field("value", 2, F.TYPE_STRING))
    entry.options.map_entry = True
    job.nested_type.append(entry)
    job.field.extend([
        _field("labels", 2, F.TYPE_MESSAGE, label=F.LABEL_REPEATED, type_name=".cli.v1.Job.LabelsEntry"),
        _field("host", 3, F.TYPE_STRING, oneof_index=0),
        _field("port", 4, F.TYPE_INT32, oneof_index=0),
    ])
    job.oneof_decl.add(name="target")
    proto.message_type.append(job)
    return proto


def _register(file_proto):
    pool = descriptor_pool.Default()
    try:
        return pool.FindFileByName(file_proto.name)
    except KeyError:
        pool.AddSerializedFile(file_proto.SerializeToString())
        return pool.FindFileByName(file_proto.name)


@pytest.fixture(scope="session")
def example_file():
    return _register(build_example_file())


@pytest.fixture(scope="session")
def legacy_file():
    return _register(build_legacy_file())


@pytest.fixture(scope="session")
def descriptor(example_file, legacy_file):
    """Look up a test message descriptor by name, e.g. descriptor("Ping")."""
    pool = descriptor_pool.Default()

    def lookup(name):
        if "." not in name:
            name = f"{EXAMPLE_PACKAGE}.{name}"
        return pool.FindMessageTypeByName(name)
    return lookup


@pytest.fixture(scope="session")
def message_class(descriptor):
    """Look up the message class of a test message by name."""
    def lookup(name):
        return message_factory.GetMessageClass(descriptor(name))
    return lookup


@pytest.fixture(scope="session")
def service(example_file):
    return example_file.services_by_name["ExampleService"]


@pytest.fixture(scope="session")
def registry(example_file):
    return SchemaRegistry.from_files([example_file])


@pytest.fixture
def job_descriptor_set(tmp_path):
    """Path of a serialized FileDescriptorSet holding cli.v1.Job."""
    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.file.append(build_job_file())
    path = tmp_path / "job.pb"
    path.write_bytes(file_set.SerializeToString())
    return path
