"""Reconciliation issue codes.

These constants prevent stringly-typed issue codes in ReconcileReport and
ensure client code matches on the right values.
"""

from enum import Enum


class ReconcileCode(str, Enum):
    """Faults the reconciler recovers from locally (non-blocking)."""

    # Map entry that is not an object, or lacks its key or value slot (dropped)
    MALFORMED_CONTAINER_ENTRY = "MALFORMED_CONTAINER_ENTRY"
    # String in an opaque well-known field that is not valid JSON (kept as-is)
    UNPARSABLE_EMBEDDED_JSON = "UNPARSABLE_EMBEDDED_JSON"
