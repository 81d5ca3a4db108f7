"""MFA enrollment decision engine."""

from .catalog import BUILTIN_METHODS, resolve_enabled
from .config import EnrollmentSettings
from .models import EnrollmentForm, FlowError, FollowUpScope, MfaMethod, Outcome, OutcomeKind, ValidationResult
from .platform import EnrollmentPlatform, EnrollmentRenderer, LoginContext
from .policy import POLICY_PROPERTIES, EnrollmentPolicy, parse_policy
from .rendering import HtmlRenderer, RenderedPage
from .service import EnrollmentEngine

__all__ = [
    "BUILTIN_METHODS",
    "EnrollmentEngine",
    "EnrollmentForm",
    "EnrollmentPlatform",
    "EnrollmentPolicy",
    "EnrollmentRenderer",
    "EnrollmentSettings",
    "FlowError",
    "FollowUpScope",
    "HtmlRenderer",
    "LoginContext",
    "MfaMethod",
    "Outcome",
    "OutcomeKind",
    "POLICY_PROPERTIES",
    "RenderedPage",
    "ValidationResult",
    "parse_policy",
    "resolve_enabled",
]
