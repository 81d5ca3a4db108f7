"""Pydantic models shared across enrollment modules."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class FollowUpScope(str, Enum):
    SESSION = "session"
    NEXT_LOGIN = "next_login"


class OutcomeKind(str, Enum):
    ALLOW = "allow"
    CHALLENGE = "challenge"
    FAIL = "fail"


class FlowError(str, Enum):
    INTERNAL_ERROR = "internal_error"
    INVALID_USER = "invalid_user"


class MfaMethod(BaseModel):
    """An enrollable credential method and the setup tasks it needs."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    label: str
    description: str
    credential_type: str
    follow_up_tasks: Tuple[str, ...] = ()

    def is_available(self, is_registered: Callable[[str], bool]) -> bool:
        return all(is_registered(task) for task in self.follow_up_tasks)

    @classmethod
    def custom(cls, method_id: str, alias: str) -> "MfaMethod":
        return cls(
            id=method_id,
            label=f"Custom: {alias}",
            description=f"Custom enrollment step: {alias}",
            credential_type=method_id,
            follow_up_tasks=(alias,),
        )


class FormField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str
    configured: bool = False
    available: bool = True

    @property
    def selectable(self) -> bool:
        return self.available and not self.configured


class EnrollmentForm(BaseModel):
    """View model handed to the renderer for the enrollment page."""

    model_config = ConfigDict(frozen=True)

    fields: Tuple[FormField, ...] = ()
    error_message: Optional[str] = None
    sufficient: bool = False
    allow_opt_out: bool = False

    @property
    def has_selectable(self) -> bool:
        return any(f.selectable for f in self.fields)


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    accepted: Tuple[str, ...] = ()
    message: Optional[str] = None

    @classmethod
    def ok(cls, accepted: List[str]) -> "ValidationResult":
        return cls(valid=True, accepted=tuple(accepted))

    @classmethod
    def rejected(cls, message: str) -> "ValidationResult":
        return cls(valid=False, message=message)


class Outcome(BaseModel):
    """Flow-level result returned to the host for one evaluation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: OutcomeKind
    response: Any = None
    reason: Optional[FlowError] = None

    @classmethod
    def allow(cls) -> "Outcome":
        return cls(kind=OutcomeKind.ALLOW)

    @classmethod
    def challenge(cls, response: Any) -> "Outcome":
        return cls(kind=OutcomeKind.CHALLENGE, response=response)

    @classmethod
    def fail(cls, reason: FlowError, response: Any) -> "Outcome":
        return cls(kind=OutcomeKind.FAIL, response=response, reason=reason)
