"""Contracts for the identity platform hosting the engine."""

from __future__ import annotations

from typing import Any, FrozenSet, Optional, Protocol, Set

from pydantic import BaseModel, ConfigDict, Field

from .models import EnrollmentForm, FollowUpScope


class LoginContext(BaseModel):
    """What the host knows about the login attempt being evaluated."""

    model_config = ConfigDict(frozen=True)

    realm: str
    user_id: str = Field(min_length=1)
    username: Optional[str] = None
    client_id: Optional[str] = None
    client_internal_id: Optional[str] = None
    brokered: bool = False
    execution_disabled: bool = False
    user_roles: FrozenSet[str] = frozenset()
    realm_roles: FrozenSet[str] = frozenset()


class EnrollmentPlatform(Protocol):
    def get_configured_credential_types(self, user_id: str) -> Set[str]:
        ...

    def is_follow_up_task_registered(self, realm: str, task_id: str) -> bool:
        ...

    def get_user_attribute(self, user_id: str, key: str) -> Optional[str]:
        ...

    def set_user_attribute(self, user_id: str, key: str, value: str) -> None:
        ...

    def register_follow_up_task(self, user_id: str, scope: FollowUpScope, task_id: str) -> None:
        ...


class EnrollmentRenderer(Protocol):
    def render_form(self, form: EnrollmentForm) -> Any:
        ...

    def render_error(self, message: str) -> Any:
        ...
