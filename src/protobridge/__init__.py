"""protobridge: JSON Schema bridge between protobuf messages and LLM tool calls."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("protobridge")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
# Kernel building blocks stay importable from protobridge.kernel.*
from protobridge.api import prepare_request, render_response
from protobridge.contracts import CompilationFailure, ExtraProperty, ReconcileIssue, ReconcileReport
from protobridge.codes import ReconcileCode
from protobridge.errors import (
    CanonicalDecodeRejection,
    ConflictingOneofMembers,
    ExtraPropertyCollisionError,
    MissingRequiredExtraProperty,
    ProtobridgeError,
    SchemaGenerationError,
)
from protobridge.kernel.extras import CallContext, current_call_context
from protobridge.kernel.types import SchemaDialect
from protobridge.registry import SchemaRegistry
from protobridge.tools import ToolDefinition, ToolHandler, build_tool, default_tool_name

__all__ = [
    "__version__",
    "prepare_request",
    "render_response",
    "SchemaRegistry",
    "SchemaDialect",
    "ExtraProperty",
    "CallContext",
    "current_call_context",
    "ReconcileCode",
    "ReconcileIssue",
    "ReconcileReport",
    "CompilationFailure",
    "ToolDefinition",
    "ToolHandler",
    "build_tool",
    "default_tool_name",
    "ProtobridgeError",
    "SchemaGenerationError",
    "ExtraPropertyCollisionError",
    "MissingRequiredExtraProperty",
    "ConflictingOneofMembers",
    "CanonicalDecodeRejection",
]
