"""Tool definitions and call handlers for protobuf service methods."""

import logging
from typing import Any, Callable, Dict, Optional, Sequence

from google.protobuf import message_factory
from google.protobuf.descriptor import MethodDescriptor
from google.protobuf.message import Message
from pydantic import BaseModel, ConfigDict, Field

from protobridge.api import prepare_request, render_response
from protobridge.contracts import ExtraProperty
from protobridge.kernel.extras import (
    CallContext,
    augment_schema,
    declared_field_names,
    published_call_context,
)
from protobridge.kernel.types import SchemaDialect
from protobridge.registry import SchemaRegistry

logger = logging.getLogger(__name__)

Backend = Callable[[Message, CallContext], Message]


class ToolDefinition(BaseModel):
    """A callable tool as advertised to an LLM client."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


def default_tool_name(method: MethodDescriptor) -> str:
    """``<package with dots as underscores>_<Service>_<Method>``."""
    service = method.containing_service
    package = service.file.package
    if not package:
        return f"{service.name}_{method.name}"
    return f"{package.replace('.', '_')}_{service.name}_{method.name}"


def build_tool(
    method: MethodDescriptor,
    registry: SchemaRegistry,
    dialect: SchemaDialect = SchemaDialect.RESTRICTED,
    extras: Sequence[ExtraProperty] = (),
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> ToolDefinition:
    """Tool definition whose input schema is the method's request schema.

    Raises:
        ExtraPropertyCollisionError: if an extra shadows a request field
    """
    request_name = method.input_type.full_name
    schema = augment_schema(
        registry.schema(request_name, dialect),
        extras,
        message_name=request_name,
        reserved=declared_field_names(registry.graph(request_name).root_node),
    )
    return ToolDefinition(
        name=name or default_tool_name(method),
        description=description if description is not None else method.full_name,
        input_schema=schema,
    )


class ToolHandler:
    """Runs one tool call against a backend implementing a service method.

    The backend is called as ``backend(request, context)`` and must return a
    response message; its exceptions propagate unchanged.
    """

    def __init__(
        self,
        method: MethodDescriptor,
        backend: Backend,
        registry: SchemaRegistry,
        dialect: SchemaDialect = SchemaDialect.RESTRICTED,
        extras: Sequence[ExtraProperty] = (),
    ):
        self.method = method
        self.backend = backend
        self.registry = registry
        self.dialect = SchemaDialect(dialect)
        self.extras = tuple(extras)
        self.tool = build_tool(method, registry, self.dialect, self.extras)
        self._request_class = message_factory.GetMessageClass(method.input_type)
        self._response_graph = registry.graph(method.output_type)

    @property
    def name(self) -> str:
        return self.tool.name

    def __call__(self, arguments: Any) -> str:
        request, context, report = prepare_request(
            self.registry, self._request_class, arguments, self.extras, self.dialect
        )
        for issue in report.issues:
            logger.debug("%s: %s at %s", self.name, issue.code.value, issue.path)
        with published_call_context(context):
            response = self.backend(request, context)
        return render_response(response, self._response_graph, self.dialect)
