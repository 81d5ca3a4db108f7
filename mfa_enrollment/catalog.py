"""Registry of enrollable MFA methods."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Set, Tuple

from .models import MfaMethod

if TYPE_CHECKING:
    from .policy import EnrollmentPolicy

CUSTOM_PREFIX = "custom:"

BUILTIN_METHODS: Tuple[MfaMethod, ...] = (
    MfaMethod(
        id="totp",
        label="Authenticator app (TOTP)",
        description="Use an authenticator application to generate one-time codes.",
        credential_type="otp",
        follow_up_tasks=("CONFIGURE_TOTP",),
    ),
    MfaMethod(
        id="webauthn",
        label="Security key / WebAuthn",
        description="Register a WebAuthn security key.",
        credential_type="webauthn",
        follow_up_tasks=("webauthn-register",),
    ),
    MfaMethod(
        id="webauthn_passwordless",
        label="Passkey (passwordless)",
        description="Register a passkey for passwordless login.",
        credential_type="webauthn-passwordless",
        follow_up_tasks=("webauthn-register-passwordless",),
    ),
    MfaMethod(
        id="recovery_codes",
        label="Recovery codes",
        description="Generate one-time recovery codes.",
        credential_type="recovery-authn-code",
        follow_up_tasks=("CONFIGURE_RECOVERY_AUTHN_CODES",),
    ),
    MfaMethod(
        id="sms_otp",
        label="SMS one-time code",
        description="Receive codes by SMS.",
        credential_type="sms-otp",
        follow_up_tasks=("sms-authenticator",),
    ),
    MfaMethod(
        id="email_otp",
        label="Email one-time code",
        description="Receive codes by email.",
        credential_type="email-otp",
        follow_up_tasks=("email-authenticator",),
    ),
)

BUILTIN_METHOD_IDS: Tuple[str, ...] = tuple(m.id for m in BUILTIN_METHODS)

CREDENTIAL_TYPE_TO_METHOD: Dict[str, str] = {m.credential_type: m.id for m in BUILTIN_METHODS}


def build_registry(enabled_ids: Iterable[str], custom_prefix: str = CUSTOM_PREFIX) -> Dict[str, MfaMethod]:
    """Index built-in methods plus any custom methods named in ``enabled_ids``."""
    registry = {method.id: method for method in BUILTIN_METHODS}
    for method_id in enabled_ids:
        if method_id in registry or not method_id.startswith(custom_prefix):
            continue
        alias = method_id[len(custom_prefix):].strip()
        if alias:
            registry[method_id] = MfaMethod.custom(method_id, alias)
    return registry


def resolve_enabled(
    policy: "EnrollmentPolicy",
    is_registered: Callable[[str], bool],
    custom_prefix: str = CUSTOM_PREFIX,
) -> List[MfaMethod]:
    """Return the enabled methods in configuration order.

    Unknown ids are skipped silently. When the policy only shows available
    methods, a method whose follow-up tasks are not all registered is dropped.
    """
    registry = build_registry(policy.enabled_method_ids, custom_prefix)
    enabled: List[MfaMethod] = []
    seen: Set[str] = set()
    for method_id in policy.enabled_method_ids:
        method = registry.get(method_id)
        if method is None or method_id in seen:
            continue
        seen.add(method_id)
        if policy.visible_only_if_available and not method.is_available(is_registered):
            continue
        enabled.append(method)
    return enabled


def configured_method_ids(credential_types: Iterable[str], custom_prefix: str = CUSTOM_PREFIX) -> Set[str]:
    """Map stored credential types to method ids; unmapped types are dropped."""
    configured: Set[str] = set()
    for credential_type in credential_types:
        method_id = CREDENTIAL_TYPE_TO_METHOD.get(credential_type)
        if method_id is not None:
            configured.add(method_id)
        elif credential_type.startswith(custom_prefix):
            configured.add(credential_type)
    return configured
