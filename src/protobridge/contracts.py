"""Public models shared between the kernel and its callers."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from protobridge.codes import ReconcileCode


class ExtraProperty(BaseModel):
    """A caller-declared parameter carried beside the message, never inside it."""
    name: str
    description: str = ""
    required: bool = False
    context_key: Optional[str] = Field(
        None, description="Key under which the value is published in the call context (defaults to name)"
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError("Extra property name cannot be empty")
        return v

    @model_validator(mode='before')
    @classmethod
    def default_context_key(cls, data):
        if isinstance(data, dict) and not data.get("context_key"):
            data = {**data, "context_key": data.get("name")}
        return data


class ReconcileIssue(BaseModel):
    """A fault recovered locally during reconciliation."""
    code: ReconcileCode
    path: str  # e.g. "mcp_server.tools[2]"
    message: str

    model_config = ConfigDict(frozen=True)


class ReconcileReport(BaseModel):
    """Issues collected over one reconciliation walk (call-owned)."""
    issues: List[ReconcileIssue] = Field(default_factory=list)

    def add(self, code: ReconcileCode, path: str, message: str) -> None:
        self.issues.append(ReconcileIssue(code=code, path=path, message=message))

    def codes(self) -> List[ReconcileCode]:
        return [issue.code for issue in self.issues]

    @property
    def clean(self) -> bool:
        return not self.issues


class CompilationFailure(BaseModel):
    """A message whose schema generation aborted."""
    message_name: str
    field_name: Optional[str] = None
    reason: str

    model_config = ConfigDict(frozen=True)
