"""Structural reconciliation between the restricted and canonical dialects.

The walk moves in lockstep with the type graph and dispatches on the
TypeNode kind only. Keys a message does not declare are never read, so
caller-supplied side-band keys survive reconciliation untouched.

    reconcile()      restricted -> canonical (inbound arguments)
    to_restricted()  canonical -> restricted (outbound responses)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional, Tuple

from protobridge._internal.canonical_json import canonical_dumps
from protobridge.codes import ReconcileCode
from protobridge.contracts import ReconcileReport
from protobridge.errors import ConflictingOneofMembers
from .types import (
    EMBEDDED_JSON_KINDS,
    PASSTHROUGH_KINDS,
    FieldNode,
    TypeGraph,
    TypeKind,
    TypeNode,
)

logger = logging.getLogger(__name__)


def reconcile(graph: TypeGraph, value: Any, report: Optional[ReconcileReport] = None) -> Any:
    """Rebuild a restricted-dialect value into the canonical shape.

    Message objects are updated in place; map fields are replaced by fresh
    dicts. The (possibly same) root value is returned.

    Args:
        graph: Type graph of the message the value claims to be
        value: Call-owned value decoded from JSON
        report: Optional collector for locally recovered faults

    Returns:
        The canonical-shaped value

    Raises:
        ConflictingOneofMembers: if two members of one oneof group are set
    """
    return _Reconciler(graph, report).message(graph.root_node, value, "")


def to_restricted(graph: TypeGraph, value: Any) -> Any:
    """Mirror of reconcile(): turn a canonical value into the restricted shape."""
    return _Mirror(graph).message(graph.root_node, value)


def declared_keys(node: TypeNode, value: Dict[str, Any]) -> Iterator[Tuple[FieldNode, str]]:
    """Yield (field, key) for every declared field present in ``value``.

    Only the field's proto name and JSON name are looked up; other keys are
    never read.
    """
    for field in node.fields:
        for key in dict.fromkeys((field.name, field.json_name)):
            if key in value:
                yield field, key


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def map_key_string(key_node: TypeNode, key: Any) -> Optional[str]:
    """Coerce a map key to its JSON string form; None when it is not a scalar."""
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, int):
        return str(key)
    if isinstance(key, float) and key_node.json_type == "integer" and key.is_integer():
        return str(int(key))
    if isinstance(key, str):
        return key
    return None


class _Reconciler:
    def __init__(self, graph: TypeGraph, report: Optional[ReconcileReport]):
        self.graph = graph
        self.report = report

    def _record(self, code: ReconcileCode, path: str, message: str) -> None:
        logger.debug("%s at %s: %s", code.value, path or "<root>", message)
        if self.report is not None:
            self.report.add(code, path, message)

    def message(self, node: TypeNode, value: Any, path: str) -> Any:
        if not isinstance(value, dict):
            return value
        self._check_oneofs(node, value)
        for field, key in list(declared_keys(node, value)):
            value[key] = self.field(field, value[key], _join(path, key))
        return value

    def _check_oneofs(self, node: TypeNode, value: Dict[str, Any]) -> None:
        for group_name in node.oneofs:
            group = self.graph.node(group_name)
            present = [
                member.name
                for member in group.members
                if value.get(member.name) is not None or value.get(member.json_name) is not None
            ]
            if len(present) > 1:
                raise ConflictingOneofMembers(group_name, present)

    def field(self, field: FieldNode, value: Any, path: str) -> Any:
        if value is None:
            return value
        target = self.graph.node(field.type_name)
        if field.repeated:
            if not isinstance(value, list):
                return value
            return [self.value(target, item, f"{path}[{i}]") for i, item in enumerate(value)]
        return self.value(target, value, path)

    def value(self, node: TypeNode, value: Any, path: str) -> Any:
        kind = node.kind
        if kind in PASSTHROUGH_KINDS:
            return value
        if kind in EMBEDDED_JSON_KINDS:
            return self.embedded_json(value, path)
        if kind == TypeKind.MAP:
            return self.map(node, value, path)
        if kind == TypeKind.MESSAGE:
            return self.message(node, value, path)
        return value

    def embedded_json(self, value: Any, path: str) -> Any:
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except ValueError as e:
            self._record(ReconcileCode.UNPARSABLE_EMBEDDED_JSON, path, f"kept original string ({e.msg})")
            return value

    def map(self, node: TypeNode, value: Any, path: str) -> Any:
        """Turn a list of ``{key, value}`` entries into a canonical map.

        A map field that already holds an object is accepted as canonical so
        reconciling twice is harmless; only its values are reconciled. Any
        other shape is left for the decoder to judge.
        """
        key_node = self.graph.node(node.key_type)
        value_node = self.graph.node(node.value_type)
        if isinstance(value, dict):
            return {k: self.value(value_node, v, f"{path}[{k}]") for k, v in value.items()}
        if not isinstance(value, list):
            return value

        result: Dict[str, Any] = {}
        for i, entry in enumerate(value):
            entry_path = f"{path}[{i}]"
            if not isinstance(entry, dict):
                self._record(ReconcileCode.MALFORMED_CONTAINER_ENTRY, entry_path,
                             f"entry is {type(entry).__name__}, not an object")
                continue
            if "key" not in entry or "value" not in entry:
                missing = "key" if "key" not in entry else "value"
                self._record(ReconcileCode.MALFORMED_CONTAINER_ENTRY, entry_path, f"entry has no {missing}")
                continue
            key = map_key_string(key_node, entry["key"])
            if key is None:
                self._record(ReconcileCode.MALFORMED_CONTAINER_ENTRY, entry_path,
                             f"key is {type(entry['key']).__name__}, not a scalar")
                continue
            result[key] = self.value(value_node, entry["value"], f"{path}[{key}]")
        return result


class _Mirror:
    def __init__(self, graph: TypeGraph):
        self.graph = graph

    def message(self, node: TypeNode, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        for field, key in list(declared_keys(node, value)):
            value[key] = self.field(field, value[key])
        return value

    def field(self, field: FieldNode, value: Any) -> Any:
        if value is None:
            return value
        target = self.graph.node(field.type_name)
        if field.repeated:
            if not isinstance(value, list):
                return value
            return [self.value(target, item) for item in value]
        return self.value(target, value)

    def value(self, node: TypeNode, value: Any) -> Any:
        kind = node.kind
        if kind in EMBEDDED_JSON_KINDS:
            return canonical_dumps(value)
        if kind == TypeKind.MAP:
            if not isinstance(value, dict):
                return value
            value_node = self.graph.node(node.value_type)
            return [{"key": k, "value": self.value(value_node, v)} for k, v in value.items()]
        if kind == TypeKind.MESSAGE:
            return self.message(node, value)
        return value
