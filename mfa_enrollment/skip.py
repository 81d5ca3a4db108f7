"""Skip conditions that short-circuit the engine with an immediate allow."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from .config import DEFAULT_FIRST_LOGIN_ATTRIBUTE
from .platform import LoginContext
from .policy import EnrollmentPolicy, IdpLoginPolicy


def is_true(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() == "true"


def _client_matches(clients: Iterable[str], context: LoginContext) -> bool:
    candidates = {c for c in (context.client_id, context.client_internal_id) if c}
    return any(client in candidates for client in clients)


def _role_matches(roles: Iterable[str], context: LoginContext) -> bool:
    # Roles that are not defined in the realm never match.
    return any(role in context.realm_roles and role in context.user_roles for role in roles)


def skip_reason(
    policy: EnrollmentPolicy,
    context: LoginContext,
    attributes: Mapping[str, Optional[str]],
    first_login_attribute: str = DEFAULT_FIRST_LOGIN_ATTRIBUTE,
) -> Optional[str]:
    """Return the first skip condition that holds, in precedence order."""
    if context.execution_disabled:
        return "execution_disabled"

    if policy.only_for_clients and not _client_matches(policy.only_for_clients, context):
        return "client"
    if policy.exclude_clients and _client_matches(policy.exclude_clients, context):
        return "client"

    if policy.only_for_roles and not _role_matches(policy.only_for_roles, context):
        return "role"
    if policy.exclude_roles and _role_matches(policy.exclude_roles, context):
        return "role"

    if policy.idp_login_policy == IdpLoginPolicy.NEVER and context.brokered:
        return "idp_policy"
    if policy.idp_login_policy == IdpLoginPolicy.ONLY and not context.brokered:
        return "idp_policy"

    if policy.enforce_on_first_login_only and is_true(attributes.get(first_login_attribute)):
        return "first_login_completed"

    for key, expected in policy.skip_if_attribute_equals:
        value = attributes.get(key)
        if value is not None and value == expected:
            return "attribute_match"

    return None


def should_skip(
    policy: EnrollmentPolicy,
    context: LoginContext,
    attributes: Mapping[str, Optional[str]],
    first_login_attribute: str = DEFAULT_FIRST_LOGIN_ATTRIBUTE,
) -> bool:
    return skip_reason(policy, context, attributes, first_login_attribute) is not None
