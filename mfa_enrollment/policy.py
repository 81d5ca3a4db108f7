"""Typed enrollment policy parsed from raw authenticator properties.

Parsing is total: a missing, blank or malformed value never raises. It is
logged as a warning and replaced by the documented default, so a broken
configuration degrades to permissive-but-safe behaviour instead of locking
users out of login.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .catalog import BUILTIN_METHOD_IDS

LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_REQUIRED = 1
DEFAULT_OPT_OUT_ATTRIBUTE = "mfaEnrollment.skipFuturePrompts"

_SPLIT = re.compile(r"[,\n]")
_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}

E = TypeVar("E", bound=Enum)


class IdpLoginPolicy(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    ONLY = "only"


class SelectionMode(str, Enum):
    AT_LEAST_ONE = "at_least_one"
    EXACTLY_ONE = "exactly_one"
    ALL_UNCONFIGURED = "all_unconfigured"
    UP_TO_MAX = "up_to_max"


class PromptTiming(str, Enum):
    SAME_LOGIN = "same_login"
    NEXT_LOGIN_TASK = "next_login_task"
    NONE = "none"


class RolloutStrategy(str, Enum):
    STABLE_HASH = "stable_hash"
    RANDOM = "random"


# Older property values still found in stored configurations.
_ENUM_ALIASES: Dict[str, str] = {
    "next_login_required_action": PromptTiming.NEXT_LOGIN_TASK.value,
    "hash_user_id": RolloutStrategy.STABLE_HASH.value,
}


class EnrollmentPolicy(BaseModel):
    """Immutable snapshot of every policy knob for one authenticator instance."""

    model_config = ConfigDict(frozen=True)

    # Trigger thresholds
    min_required_overall: int = DEFAULT_MIN_REQUIRED
    min_required_from_enabled: int = DEFAULT_MIN_REQUIRED
    max_allowed_configured: int = 0

    # Targeting
    enforce_on_first_login_only: bool = False
    idp_login_policy: IdpLoginPolicy = IdpLoginPolicy.ALWAYS
    only_for_roles: Tuple[str, ...] = ()
    exclude_roles: Tuple[str, ...] = ()
    only_for_clients: Tuple[str, ...] = ()
    exclude_clients: Tuple[str, ...] = ()

    # Catalog selection
    enabled_method_ids: Tuple[str, ...] = BUILTIN_METHOD_IDS
    visible_only_if_available: bool = True
    hide_already_configured: bool = False

    # Selection rules
    selection_mode: SelectionMode = SelectionMode.AT_LEAST_ONE
    max_new_methods_per_submission: int = 0
    fail_if_selection_invalid: bool = True
    allow_empty_selection_if_sufficient: bool = True

    # Post-sufficiency behaviour
    offer_additional_after_sufficient: bool = True
    prompt_timing: PromptTiming = PromptTiming.SAME_LOGIN

    # User-controlled bypass
    allow_opt_out: bool = True
    opt_out_attribute_name: str = DEFAULT_OPT_OUT_ATTRIBUTE
    opt_out_honored_when_insufficient: bool = False
    remind_every_days: int = 0
    rollout_percentage: int = Field(default=100, ge=0, le=100)
    rollout_strategy: RolloutStrategy = RolloutStrategy.STABLE_HASH
    bypass_rollout_if_insufficient: bool = True
    skip_if_attribute_equals: Tuple[Tuple[str, str], ...] = ()


class PolicyProperty(BaseModel):
    """Admin-facing description of one configuration key."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    type: Literal["string", "boolean", "list", "multivalued"]
    default: Optional[str] = None
    help_text: str
    options: Tuple[str, ...] = ()


def _prop(name, label, kind, default, help_text, options=()) -> PolicyProperty:
    return PolicyProperty(
        name=name, label=label, type=kind, default=default, help_text=help_text, options=tuple(options)
    )


POLICY_PROPERTIES: Tuple[PolicyProperty, ...] = (
    # Triggering conditions
    _prop("min_required_mfa_methods", "Min Required MFA Methods", "string", "1",
          "Minimum number of distinct MFA methods a user must have configured overall."),
    _prop("min_required_from_list", "Min Required From List", "string", None,
          "Minimum number of methods from the enabled list the user must have. "
          "Defaults to the overall minimum."),
    _prop("max_allowed_mfa_methods", "Max Allowed MFA Methods", "string", None,
          "Skip prompting if the user already has this many methods configured."),
    _prop("enforce_on_first_login_only", "Enforce On First Login Only", "boolean", "false",
          "When true, only prompt on the user's first successful login."),
    _prop("enforce_for_idp_users", "Enforce For IdP Users", "list", "always",
          "Control behaviour for brokered IdP logins.", [p.value for p in IdpLoginPolicy]),
    # Supported methods
    _prop("enabled_mfa_types", "Enabled MFA Types", "multivalued", ",".join(BUILTIN_METHOD_IDS),
          "Method ids the user can choose from, in display order. "
          "Use custom:<task> for a custom enrollment step."),
    _prop("visible_only_if_supported", "Hide Unsupported Methods", "boolean", "true",
          "Show methods only when their follow-up tasks are registered."),
    _prop("hide_already_configured_methods", "Hide Configured Methods", "boolean", "false",
          "Remove already-configured methods from the selection list."),
    # Selection rules
    _prop("selection_mode", "Selection Mode", "list", "at_least_one",
          "Rule for how many methods the user must select.", [m.value for m in SelectionMode]),
    _prop("max_new_methods_per_login", "Max New Methods Per Login", "string", None,
          "Cap on new methods started in a single login (used with up_to_max)."),
    _prop("fail_if_selection_insufficient", "Fail If Selection Insufficient", "boolean", "true",
          "Fail the login when the user selection does not meet requirements."),
    _prop("allow_no_selection_if_already_sufficient", "Allow No Selection If Already Sufficient",
          "boolean", "true",
          "Let users proceed without selecting new methods when they already meet minimums."),
    # Post-auth behaviour
    _prop("offer_configure_additional_methods", "Offer Additional Methods", "boolean", "true",
          "Invite the user to configure more methods after meeting minimums."),
    _prop("post_auth_prompt_mode", "Post-Auth Prompt Mode", "list", "same_login",
          "When to run setup tasks for additional methods once minimums are met.",
          [t.value for t in PromptTiming]),
    # Opt-out controls
    _prop("allow_user_opt_out", "Allow User Opt-Out", "boolean", "true",
          "Show a 'don't ask again' option to the user."),
    _prop("opt_out_respected_when_not_sufficient", "Respect Opt-Out When Not Sufficient", "boolean",
          "false", "Honor opt-out even if the user does not meet minimum requirements."),
    _prop("opt_out_attribute_name", "Opt-Out Attribute Name", "string", DEFAULT_OPT_OUT_ATTRIBUTE,
          "User attribute used to store the opt-out flag."),
    # Rollout
    _prop("rollout_percentage", "Rollout Percentage", "string", "100",
          "Percent of users prompted when other conditions are met."),
    _prop("rollout_strategy", "Rollout Strategy", "list", "stable_hash",
          "Stable hash by user or random per login.", [s.value for s in RolloutStrategy]),
    _prop("bypass_rollout_if_not_sufficient", "Bypass Rollout If Not Sufficient", "boolean", "true",
          "Always prompt users below the minimum regardless of rollout percentage."),
    # Targeting and reminders
    _prop("only_for_roles", "Only For Roles", "multivalued", None,
          "Limit prompting to users with any of these realm roles."),
    _prop("exclude_roles", "Exclude Roles", "multivalued", None,
          "Skip prompting for users with any of these realm roles."),
    _prop("only_for_clients", "Only For Clients", "multivalued", None,
          "Limit prompting to these client ids."),
    _prop("exclude_clients", "Exclude Clients", "multivalued", None,
          "Skip prompting for these client ids."),
    _prop("remind_every_days", "Remind Every N Days", "string", None,
          "Minimum days between prompts to the same user."),
    _prop("skip_if_attribute_equals", "Skip If Attribute Equals", "multivalued", None,
          "key=value pairs; if any user attribute matches, skip prompting."),
)


# Parsing helpers ---------------------------------------------------------
def _raw(props: Mapping[str, Any], key: str) -> Optional[str]:
    value = props.get(key)
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value)
    return str(value)


def _warn(key: str, raw: str, default: object) -> None:
    LOGGER.warning("Invalid value %r for %s, using default %r", raw, key, default)


def _int(props: Mapping[str, Any], key: str, default: int) -> int:
    raw = _raw(props, key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        _warn(key, raw, default)
        return default


def _bool(props: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = _raw(props, key)
    if raw is None or not raw.strip():
        return default
    token = raw.strip().lower()
    if token in _TRUE:
        return True
    if token in _FALSE:
        return False
    _warn(key, raw, default)
    return default


def _enum(props: Mapping[str, Any], key: str, enum_type: Type[E], default: E) -> E:
    raw = _raw(props, key)
    if raw is None or not raw.strip():
        return default
    token = raw.strip().lower()
    token = _ENUM_ALIASES.get(token, token)
    try:
        return enum_type(token)
    except ValueError:
        _warn(key, raw, default.value)
        return default


def _tokens(raw: Optional[str]) -> List[str]:
    if raw is None:
        return []
    return [part.strip() for part in _SPLIT.split(raw) if part.strip()]


def _list(props: Mapping[str, Any], key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    tokens = _tokens(_raw(props, key))
    return tuple(tokens) if tokens else default


def _pairs(props: Mapping[str, Any], key: str) -> Tuple[Tuple[str, str], ...]:
    pairs: Dict[str, str] = {}
    for entry in _tokens(_raw(props, key)):
        name, sep, value = entry.partition("=")
        if not sep or not name.strip():
            LOGGER.warning("Dropping malformed %s entry %r", key, entry)
            continue
        pairs[name.strip()] = value.strip()
    return tuple(pairs.items())


def parse_policy(properties: Optional[Mapping[str, Any]] = None) -> EnrollmentPolicy:
    """Build an :class:`EnrollmentPolicy` from raw properties; never raises."""
    props: Mapping[str, Any] = properties if isinstance(properties, Mapping) else {}

    min_overall = _int(props, "min_required_mfa_methods", DEFAULT_MIN_REQUIRED)
    rollout = _int(props, "rollout_percentage", 100)
    if not 0 <= rollout <= 100:
        clamped = max(0, min(100, rollout))
        LOGGER.warning("rollout_percentage %s outside [0, 100], clamped to %s", rollout, clamped)
        rollout = clamped
    opt_out_attribute = (_raw(props, "opt_out_attribute_name") or "").strip() or DEFAULT_OPT_OUT_ATTRIBUTE

    return EnrollmentPolicy(
        min_required_overall=min_overall,
        min_required_from_enabled=_int(props, "min_required_from_list", min_overall),
        max_allowed_configured=_int(props, "max_allowed_mfa_methods", 0),
        enforce_on_first_login_only=_bool(props, "enforce_on_first_login_only", False),
        idp_login_policy=_enum(props, "enforce_for_idp_users", IdpLoginPolicy, IdpLoginPolicy.ALWAYS),
        only_for_roles=_list(props, "only_for_roles"),
        exclude_roles=_list(props, "exclude_roles"),
        only_for_clients=_list(props, "only_for_clients"),
        exclude_clients=_list(props, "exclude_clients"),
        enabled_method_ids=_list(props, "enabled_mfa_types", BUILTIN_METHOD_IDS),
        visible_only_if_available=_bool(props, "visible_only_if_supported", True),
        hide_already_configured=_bool(props, "hide_already_configured_methods", False),
        selection_mode=_enum(props, "selection_mode", SelectionMode, SelectionMode.AT_LEAST_ONE),
        max_new_methods_per_submission=_int(props, "max_new_methods_per_login", 0),
        fail_if_selection_invalid=_bool(props, "fail_if_selection_insufficient", True),
        allow_empty_selection_if_sufficient=_bool(props, "allow_no_selection_if_already_sufficient", True),
        offer_additional_after_sufficient=_bool(props, "offer_configure_additional_methods", True),
        prompt_timing=_enum(props, "post_auth_prompt_mode", PromptTiming, PromptTiming.SAME_LOGIN),
        allow_opt_out=_bool(props, "allow_user_opt_out", True),
        opt_out_attribute_name=opt_out_attribute,
        opt_out_honored_when_insufficient=_bool(props, "opt_out_respected_when_not_sufficient", False),
        remind_every_days=_int(props, "remind_every_days", 0),
        rollout_percentage=rollout,
        rollout_strategy=_enum(props, "rollout_strategy", RolloutStrategy, RolloutStrategy.STABLE_HASH),
        bypass_rollout_if_insufficient=_bool(props, "bypass_rollout_if_not_sufficient", True),
        skip_if_attribute_equals=_pairs(props, "skip_if_attribute_equals"),
    )
