"""Byte-stable JSON text for values that are stored, compared or mirrored.

The registry freezes every rendered schema as text: the same descriptors
must always yield the same bytes, so a tool definition sent to a model
client never changes between processes, and every lookup can hand out an
independent copy by parsing the text again. The response mirror uses the
same form for opaque values encoded as strings in the restricted dialect.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """Serialize ``obj`` with sorted keys, compact separators and raw UTF-8.

    Key order of the input dict never leaks into the output, which keeps
    schema text identical regardless of descriptor iteration order.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def thaw(text: str) -> Any:
    """Return a fresh, mutable copy of a value frozen with canonical_dumps."""
    return json.loads(text)
