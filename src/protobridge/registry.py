"""Compile-once registry of type graphs and rendered schemas."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from google.protobuf.descriptor import Descriptor, FileDescriptor

from protobridge._internal.canonical_json import canonical_dumps, thaw
from protobridge.contracts import CompilationFailure, ExtraProperty
from protobridge.errors import SchemaGenerationError
from protobridge.kernel.builder import TypeGraphBuilder, is_well_known
from protobridge.kernel.extras import augment_schema, declared_field_names
from protobridge.kernel.render import render_schema
from protobridge.kernel.types import SchemaDialect, TypeGraph

logger = logging.getLogger(__name__)

MessageRef = Union[str, Descriptor]


def _message_name(message: MessageRef) -> str:
    return message if isinstance(message, str) else message.full_name


def iter_file_messages(file_descriptor: FileDescriptor) -> Iterator[Descriptor]:
    """Yield every message declared in a file, nested ones included (map entries excluded)."""
    pending = list(file_descriptor.message_types_by_name.values())
    while pending:
        message = pending.pop(0)
        if message.GetOptions().map_entry:
            continue
        yield message
        pending.extend(message.nested_types)


class SchemaRegistry:
    """Type graphs and both rendered schemas of a set of messages.

    Built once by compile(); read-only afterwards, so a registry can be
    shared freely between concurrent handlers. Schemas are kept as
    canonical JSON text and every lookup hands out a fresh copy.
    """

    def __init__(
        self,
        graphs: Dict[str, TypeGraph],
        schemas: Dict[Tuple[str, SchemaDialect], str],
        failures: Dict[str, CompilationFailure],
        extras: Sequence[ExtraProperty] = (),
    ):
        self._graphs = MappingProxyType(dict(graphs))
        self._schemas = MappingProxyType(dict(schemas))
        self._failures = MappingProxyType(dict(failures))
        self._extras = tuple(extras)

    @classmethod
    def compile(
        cls,
        descriptors: Iterable[Descriptor],
        extras: Optional[Sequence[ExtraProperty]] = None,
    ) -> "SchemaRegistry":
        """Build the graph and both schemas of every descriptor.

        A message that cannot be compiled is recorded in ``failures``; the
        others still compile. ``extras`` are added to every rendered schema.
        """
        extras = tuple(extras or ())
        builder = TypeGraphBuilder()
        graphs: Dict[str, TypeGraph] = {}
        schemas: Dict[Tuple[str, SchemaDialect], str] = {}
        failures: Dict[str, CompilationFailure] = {}

        for descriptor in descriptors:
            name = descriptor.full_name
            if name in graphs or name in failures or is_well_known(name):
                continue
            try:
                graph = builder.build(descriptor)
                reserved = declared_field_names(graph.root_node)
                rendered = {
                    dialect: augment_schema(
                        render_schema(graph, dialect), extras, message_name=name, reserved=reserved
                    )
                    for dialect in SchemaDialect
                }
            except SchemaGenerationError as e:
                logger.warning("Skipping %s: %s", name, e)
                failures[name] = CompilationFailure(
                    message_name=e.message_name, field_name=e.field_name, reason=e.reason
                )
                continue
            graphs[name] = graph
            for dialect, schema in rendered.items():
                schemas[(name, dialect)] = canonical_dumps(schema)

        logger.info("Compiled %d message(s), %d failure(s)", len(graphs), len(failures))
        return cls(graphs, schemas, failures, extras)

    @classmethod
    def from_files(
        cls,
        files: Iterable[FileDescriptor],
        extras: Optional[Sequence[ExtraProperty]] = None,
    ) -> "SchemaRegistry":
        """Compile every message declared in the given files."""
        descriptors = [message for f in files for message in iter_file_messages(f)]
        return cls.compile(descriptors, extras)

    @property
    def extras(self) -> Tuple[ExtraProperty, ...]:
        return self._extras

    @property
    def failures(self) -> List[CompilationFailure]:
        return [self._failures[name] for name in sorted(self._failures)]

    def names(self) -> List[str]:
        return sorted(self._graphs)

    def __contains__(self, message: object) -> bool:
        if not isinstance(message, (str, Descriptor)):
            return False
        return _message_name(message) in self._graphs

    def _check(self, name: str) -> None:
        if name in self._graphs:
            return
        failure = self._failures.get(name)
        if failure is not None:
            raise SchemaGenerationError(failure.message_name, failure.reason, failure.field_name)
        raise KeyError(f"Message {name} was not compiled into this registry")

    def graph(self, message: MessageRef) -> TypeGraph:
        """Type graph of a compiled message.

        Raises:
            SchemaGenerationError: if the message failed to compile
            KeyError: if the message was never compiled
        """
        name = _message_name(message)
        self._check(name)
        return self._graphs[name]

    def schema(
        self,
        message: MessageRef,
        dialect: SchemaDialect = SchemaDialect.CANONICAL,
    ) -> Dict[str, Any]:
        """Fresh copy of a compiled message's schema in the given dialect."""
        name = _message_name(message)
        self._check(name)
        return thaw(self._schemas[(name, SchemaDialect(dialect))])

    def schema_text(
        self,
        message: MessageRef,
        dialect: SchemaDialect = SchemaDialect.CANONICAL,
    ) -> str:
        """Stored canonical JSON text of a compiled message's schema."""
        name = _message_name(message)
        self._check(name)
        return self._schemas[(name, SchemaDialect(dialect))]
