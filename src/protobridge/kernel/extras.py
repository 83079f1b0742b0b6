"""Extra-parameter channel: side-band properties carried beside the message.

Extras are added to a rendered schema as top-level string properties and
pulled out of the inbound arguments before the message is decoded. They
never enter the type graph.
"""

from __future__ import annotations

import contextvars
import copy
import logging
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from protobridge.contracts import ExtraProperty
from protobridge.errors import ExtraPropertyCollisionError, MissingRequiredExtraProperty
from .types import TypeNode

logger = logging.getLogger(__name__)

_current_call_context: contextvars.ContextVar[Optional["CallContext"]] = contextvars.ContextVar(
    "protobridge_call_context", default=None
)


class CallContext(Mapping[str, Any]):
    """Read-only mapping of context key -> extra property value for one call."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CallContext({dict(self._values)!r})"


def declared_field_names(node: TypeNode) -> List[str]:
    """Proto and JSON names of every field declared on a message node."""
    names: Dict[str, None] = {}
    for field in node.fields:
        names.setdefault(field.name)
        names.setdefault(field.json_name)
    return list(names)


def augment_schema(
    schema: Dict[str, Any],
    extras: Sequence[ExtraProperty],
    message_name: str = "<schema>",
    reserved: Iterable[str] = (),
) -> Dict[str, Any]:
    """Return a copy of ``schema`` with each extra added as a top-level property.

    ``reserved`` lists further names an extra may not take, typically the
    JSON names of the root message's fields (see declared_field_names).

    Raises:
        ExtraPropertyCollisionError: if an extra name matches a declared
            property, a reserved name or another extra
    """
    taken = set(schema.get("properties", {}))
    taken.update(reserved)
    seen: set[str] = set()
    collisions = []
    for extra in extras:
        if extra.name in taken or extra.name in seen:
            collisions.append(extra.name)
        seen.add(extra.name)
    if collisions:
        raise ExtraPropertyCollisionError(message_name, collisions)

    augmented = copy.deepcopy(schema)
    if not extras:
        return augmented
    augmented.setdefault("properties", {})
    required = augmented.setdefault("required", [])
    for extra in extras:
        augmented["properties"][extra.name] = {"type": "string", "description": extra.description}
        if extra.required:
            required.append(extra.name)
    return augmented


def extract_extra_properties(value: Any, extras: Sequence[ExtraProperty]) -> CallContext:
    """Move every declared extra out of the top level of ``value``.

    ``value`` must be call-owned: present extras are deleted from it and
    their (deep-copied) values published in the returned context.

    Raises:
        MissingRequiredExtraProperty: if required extras are absent
    """
    if not extras:
        return CallContext()
    present = value if isinstance(value, dict) else {}

    collected: Dict[str, Any] = {}
    missing = []
    for extra in extras:
        if extra.name in present:
            collected[extra.context_key] = copy.deepcopy(present[extra.name])
            del present[extra.name]
        elif extra.required:
            missing.append(extra.name)
    if missing:
        raise MissingRequiredExtraProperty(missing)

    if collected:
        logger.debug("Extracted extra properties: %s", ", ".join(sorted(collected)))
    return CallContext(collected)


def current_call_context() -> CallContext:
    """Context of the handler invocation running in this task or thread."""
    context = _current_call_context.get()
    return context if context is not None else CallContext()


@contextmanager
def published_call_context(context: CallContext) -> Iterator[CallContext]:
    """Publish ``context`` through current_call_context() for the block."""
    token = _current_call_context.set(context)
    try:
        yield context
    finally:
        _current_call_context.reset(token)
