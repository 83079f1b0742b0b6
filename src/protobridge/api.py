"""Public API for the protobridge call pipeline.

High-level functions that take an inbound tool-call argument object all the
way to a decoded protobuf message, and a response message back to JSON.
Clients should use these functions instead of chaining the kernel steps.
"""

import copy
import logging
from typing import Any, Optional, Sequence, Tuple, Type, Union

from google.protobuf import json_format
from google.protobuf.message import Message

from protobridge._internal.canonical_json import canonical_dumps
from protobridge.contracts import ExtraProperty, ReconcileReport
from protobridge.errors import CanonicalDecodeRejection
from protobridge.kernel.builder import build_type_graph
from protobridge.kernel.extras import CallContext, extract_extra_properties
from protobridge.kernel.reconcile import reconcile, to_restricted
from protobridge.kernel.types import SchemaDialect, TypeGraph
from protobridge.registry import SchemaRegistry

logger = logging.getLogger(__name__)

GraphSource = Union[SchemaRegistry, TypeGraph, None]


def _resolve_graph(source: GraphSource, message_class: Type[Message]) -> TypeGraph:
    descriptor = message_class.DESCRIPTOR
    if isinstance(source, SchemaRegistry):
        return source.graph(descriptor)
    if isinstance(source, TypeGraph):
        if source.root != descriptor.full_name:
            raise ValueError(f"Type graph is rooted at {source.root}, not {descriptor.full_name}")
        return source
    return build_type_graph(descriptor)


def prepare_request(
    source: GraphSource,
    message_class: Type[Message],
    arguments: Any,
    extras: Sequence[ExtraProperty] = (),
    dialect: SchemaDialect = SchemaDialect.RESTRICTED,
) -> Tuple[Message, CallContext, ReconcileReport]:
    """Turn inbound tool-call arguments into a request message.

    The arguments are copied first, so the caller's object is never
    modified. Extra properties are moved into the call context, the rest is
    reconciled into the canonical shape (restricted dialect only) and
    decoded. When ``source`` is a registry, its own extras are extracted
    too.

    Args:
        source: Registry holding the message, its type graph, or None to
            build the graph on the fly
        message_class: Generated (or factory-built) message class
        arguments: Decoded JSON object received from the client
        extras: Extra properties declared for this call
        dialect: Dialect the client was given the schema in

    Returns:
        Tuple of (message, call context, reconcile report)

    Raises:
        MissingRequiredExtraProperty: if a required extra is absent
        ConflictingOneofMembers: if two members of a oneof group are set
        CanonicalDecodeRejection: if the decoder rejects the value
    """
    message_name = message_class.DESCRIPTOR.full_name
    graph = _resolve_graph(source, message_class)
    if isinstance(source, SchemaRegistry):
        extras = tuple(source.extras) + tuple(extras)

    value = copy.deepcopy(arguments) if arguments is not None else {}
    if not isinstance(value, dict):
        raise CanonicalDecodeRejection(message_name, f"arguments must be a JSON object, got {type(value).__name__}")

    context = extract_extra_properties(value, extras)
    report = ReconcileReport()
    if SchemaDialect(dialect) == SchemaDialect.RESTRICTED:
        value = reconcile(graph, value, report)
        if not report.clean:
            logger.debug("Reconciled %s with %d recovered issue(s)", message_name, len(report.issues))

    message = message_class()
    try:
        json_format.ParseDict(value, message, ignore_unknown_fields=True)
    except json_format.ParseError as e:
        raise CanonicalDecodeRejection(message_name, str(e)) from e
    return message, context, report


def response_value(
    message: Message,
    graph: Optional[TypeGraph] = None,
    dialect: SchemaDialect = SchemaDialect.CANONICAL,
) -> Any:
    """Canonical JSON value of a response message, mirrored when restricted."""
    value = json_format.MessageToDict(
        message,
        preserving_proto_field_name=True,
        always_print_fields_with_no_presence=True,
    )
    if SchemaDialect(dialect) == SchemaDialect.RESTRICTED:
        if graph is None:
            graph = build_type_graph(message.DESCRIPTOR)
        value = to_restricted(graph, value)
    return value


def render_response(
    message: Message,
    graph: Optional[TypeGraph] = None,
    dialect: SchemaDialect = SchemaDialect.CANONICAL,
) -> str:
    """Serialize a response message as JSON text for the given dialect."""
    return canonical_dumps(response_value(message, graph, dialect))
