"""Exception hierarchy for protobridge.

Compile-time errors abort generation of one message. Call-time errors are
raised to the caller before the canonical decoder runs (except
CanonicalDecodeRejection, which is the decoder's own refusal).
"""

from typing import Iterable


class ProtobridgeError(Exception):
    """Base exception for all protobridge errors."""
    pass


class SchemaGenerationError(ProtobridgeError):
    """Raised when a message cannot be compiled into a type graph."""
    def __init__(self, message_name: str, reason: str, field_name: str | None = None):
        self.message_name = message_name
        self.field_name = field_name
        self.reason = reason
        location = f"{message_name}.{field_name}" if field_name else message_name
        super().__init__(f"Cannot generate schema for {location}: {reason}")


class ExtraPropertyCollisionError(SchemaGenerationError):
    """Raised when an extra property name shadows a declared property."""
    def __init__(self, message_name: str, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__(
            message_name,
            "extra properties collide with declared fields: " + ", ".join(self.names),
        )


class MissingRequiredExtraProperty(ProtobridgeError):
    """Raised when required extra properties are absent from a call."""
    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__("Missing required extra properties: " + ", ".join(self.names))


class ConflictingOneofMembers(ProtobridgeError):
    """Raised when more than one member of a oneof group is populated."""
    def __init__(self, group: str, members: Iterable[str]):
        self.group = group
        self.members = sorted(members)
        super().__init__(
            f"Oneof group {group} allows at most one member, got: " + ", ".join(self.members)
        )


class CanonicalDecodeRejection(ProtobridgeError):
    """Raised when the canonical JSON decoder cannot map the reconciled value."""
    def __init__(self, message_name: str, detail: str):
        self.message_name = message_name
        self.detail = detail
        super().__init__(f"Cannot decode {message_name}: {detail}")
