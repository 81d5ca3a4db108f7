from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
import sys

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mfa_enrollment.catalog import BUILTIN_METHODS
from mfa_enrollment.config import EnrollmentSettings
from mfa_enrollment.models import EnrollmentForm, FollowUpScope
from mfa_enrollment.platform import LoginContext
from mfa_enrollment.service import EnrollmentEngine

NOW_MS = 1_760_000_000_000
ALL_TASKS = {task for method in BUILTIN_METHODS for task in method.follow_up_tasks}


class FakePlatform:
    def __init__(self) -> None:
        self.credential_types: Set[str] = set()
        self.registered_tasks: Set[str] = set(ALL_TASKS)
        self.attributes: Dict[str, str] = {}
        self.writes: List[Tuple[str, str]] = []
        self.tasks: List[Tuple[FollowUpScope, str]] = []

    def get_configured_credential_types(self, user_id: str) -> Set[str]:
        return set(self.credential_types)

    def is_follow_up_task_registered(self, realm: str, task_id: str) -> bool:
        return task_id in self.registered_tasks

    def get_user_attribute(self, user_id: str, key: str) -> Optional[str]:
        return self.attributes.get(key)

    def set_user_attribute(self, user_id: str, key: str, value: str) -> None:
        self.attributes[key] = value
        self.writes.append((key, value))

    def register_follow_up_task(self, user_id: str, scope: FollowUpScope, task_id: str) -> None:
        self.tasks.append((scope, task_id))


class FakeRenderer:
    """Hands the view model back so tests can inspect it."""

    def render_form(self, form: EnrollmentForm) -> EnrollmentForm:
        return form

    def render_error(self, message: str) -> dict:
        return {"error": message}


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def settings() -> EnrollmentSettings:
    return EnrollmentSettings()


@pytest.fixture
def context() -> LoginContext:
    return LoginContext(
        realm="test",
        user_id="user-1",
        username="alice",
        client_id="account-console",
        client_internal_id="5f0c-account",
        user_roles=frozenset({"staff"}),
        realm_roles=frozenset({"staff", "admin"}),
    )


@pytest.fixture
def make_engine(platform, settings):
    def factory(properties: Optional[dict] = None, clock=lambda: NOW_MS) -> EnrollmentEngine:
        return EnrollmentEngine(
            properties or {},
            platform,
            renderer=FakeRenderer(),
            settings=settings,
            clock=clock,
        )

    return factory
