"""Business logic for the enrollment host."""

from __future__ import annotations

import secrets
import string
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfa_enrollment.models import FollowUpScope
from mfa_enrollment.platform import LoginContext

from .config import ServerSettings
from .models import PendingTask, StoredCredential, User, UserAttribute, UserRole
from .schemas import DecideRequest


ALPHABET = string.ascii_letters + string.digits


def _generate_user_handle(length: int = 21) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def ensure_user(session: Session, username: str) -> User:
    user = session.scalar(select(User).where(User.username == username))
    if user:
        return user
    handle = _generate_user_handle()
    while session.scalar(select(User).where(User.user_handle == handle)):
        handle = _generate_user_handle()
    user = User(username=username, user_handle=handle)
    session.add(user)
    session.flush()
    return user


def add_credential(session: Session, user: User, credential_type: str) -> StoredCredential:
    credential = StoredCredential(user_id=user.id, type=credential_type)
    session.add(credential)
    session.flush()
    return credential


def grant_role(session: Session, user: User, role: str) -> None:
    exists = session.scalar(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role == role)
    )
    if not exists:
        session.add(UserRole(user_id=user.id, role=role))
        session.flush()


def pending_tasks(session: Session, user: User) -> List[str]:
    return list(session.scalars(select(PendingTask.task_id).where(PendingTask.user_id == user.id)))


def build_context(session: Session, user: User, payload: DecideRequest, settings: ServerSettings) -> LoginContext:
    roles = session.scalars(select(UserRole.role).where(UserRole.user_id == user.id))
    return LoginContext(
        realm=settings.realm,
        user_id=user.user_handle,
        username=user.username,
        client_id=payload.client_id,
        client_internal_id=payload.client_internal_id,
        brokered=payload.brokered,
        execution_disabled=payload.execution_disabled,
        user_roles=frozenset(roles),
        realm_roles=frozenset(settings.realm_roles),
    )


class SqlEnrollmentPlatform:
    """Engine collaborators backed by the host database.

    Session-scoped tasks only live for the current request and are collected
    in ``session_tasks``; next-login tasks are persisted.
    """

    def __init__(self, session: Session, settings: ServerSettings) -> None:
        self.session = session
        self.settings = settings
        self.session_tasks: List[str] = []

    def _user(self, user_id: str) -> User:
        user = self.session.scalar(select(User).where(User.user_handle == user_id))
        if user is None:
            raise LookupError(f"Unknown user {user_id}")
        return user

    def get_configured_credential_types(self, user_id: str) -> Set[str]:
        user = self._user(user_id)
        return set(
            self.session.scalars(select(StoredCredential.type).where(StoredCredential.user_id == user.id))
        )

    def is_follow_up_task_registered(self, realm: str, task_id: str) -> bool:
        return realm == self.settings.realm and task_id in self.settings.registered_tasks

    def get_user_attribute(self, user_id: str, key: str) -> Optional[str]:
        user = self._user(user_id)
        return self.session.scalar(
            select(UserAttribute.value).where(UserAttribute.user_id == user.id, UserAttribute.name == key)
        )

    def set_user_attribute(self, user_id: str, key: str, value: str) -> None:
        user = self._user(user_id)
        attribute = self.session.scalar(
            select(UserAttribute).where(UserAttribute.user_id == user.id, UserAttribute.name == key)
        )
        if attribute is None:
            self.session.add(UserAttribute(user_id=user.id, name=key, value=value))
        else:
            attribute.value = value
        self.session.flush()

    def register_follow_up_task(self, user_id: str, scope: FollowUpScope, task_id: str) -> None:
        if scope == FollowUpScope.SESSION:
            if task_id not in self.session_tasks:
                self.session_tasks.append(task_id)
            return
        user = self._user(user_id)
        exists = self.session.scalar(
            select(PendingTask).where(PendingTask.user_id == user.id, PendingTask.task_id == task_id)
        )
        if not exists:
            self.session.add(PendingTask(user_id=user.id, task_id=task_id))
            self.session.flush()
