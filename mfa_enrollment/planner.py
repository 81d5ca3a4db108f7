"""Pure decision logic for the pre-form and post-submission paths.

Both planners read a single immutable :class:`EvaluationInputs` value and
return a :class:`Plan`: the outcome plus the attribute writes, follow-up tasks
and page the engine must apply. Nothing here touches the platform.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from .models import (
    EnrollmentForm,
    FlowError,
    FollowUpScope,
    FormField,
    MfaMethod,
    OutcomeKind,
    ValidationResult,
)
from .platform import LoginContext
from .policy import EnrollmentPolicy, PromptTiming
from .selection import validate_selection
from .skip import is_true, skip_reason

DAY_MS = 86_400_000
DEADLOCK_MESSAGE = "No available MFA methods to configure. Contact your administrator."


class EvaluationInputs(BaseModel):
    """Everything one evaluation needs, gathered once from the platform."""

    model_config = ConfigDict(frozen=True)

    policy: EnrollmentPolicy
    context: LoginContext
    methods: Tuple[MfaMethod, ...]
    available_ids: FrozenSet[str]
    configured: FrozenSet[str]
    sufficient: bool
    attribute_values: Tuple[Tuple[str, Optional[str]], ...]
    now_ms: int
    rollout_bucket: int
    last_prompt_attribute: str
    first_login_attribute: str

    @property
    def attributes(self) -> Mapping[str, Optional[str]]:
        return MappingProxyType(dict(self.attribute_values))


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    outcome: OutcomeKind = OutcomeKind.ALLOW
    reason: Optional[FlowError] = None
    form: Optional[EnrollmentForm] = None
    error_message: Optional[str] = None
    attribute_writes: Tuple[Tuple[str, str], ...] = ()
    tasks: Tuple[Tuple[FollowUpScope, str], ...] = ()
    validation: Optional[ValidationResult] = None


def _allow(step: str, writes: Sequence[Tuple[str, str]] = (), **extra: Any) -> Plan:
    return Plan(step=step, attribute_writes=tuple(writes), **extra)


def _first_login_writes(inputs: EvaluationInputs) -> List[Tuple[str, str]]:
    if inputs.policy.enforce_on_first_login_only:
        return [(inputs.first_login_attribute, "true")]
    return []


def _prompted_recently(inputs: EvaluationInputs) -> bool:
    days = inputs.policy.remind_every_days
    if days <= 0:
        return False
    raw = inputs.attributes.get(inputs.last_prompt_attribute)
    if raw is None:
        return False
    try:
        last = int(raw.strip())
    except ValueError:
        return False
    return last > inputs.now_ms - days * DAY_MS


def _outside_rollout(inputs: EvaluationInputs) -> bool:
    policy = inputs.policy
    if policy.rollout_percentage >= 100:
        return False
    if policy.bypass_rollout_if_insufficient and not inputs.sufficient:
        return False
    return inputs.rollout_bucket >= policy.rollout_percentage


def unconfigured_available(inputs: EvaluationInputs) -> List[MfaMethod]:
    return [
        method
        for method in inputs.methods
        if method.id not in inputs.configured
        and (not inputs.policy.visible_only_if_available or method.id in inputs.available_ids)
    ]


def build_form(inputs: EvaluationInputs, error_message: Optional[str] = None) -> EnrollmentForm:
    fields = tuple(
        FormField(
            id=method.id,
            label=method.label,
            description=method.description,
            configured=method.id in inputs.configured,
            available=method.id in inputs.available_ids,
        )
        for method in inputs.methods
    )
    return EnrollmentForm(
        fields=fields,
        error_message=error_message,
        sufficient=inputs.sufficient,
        allow_opt_out=inputs.policy.allow_opt_out,
    )


def plan_decision(inputs: EvaluationInputs) -> Plan:
    """Decide whether the enrollment form is shown for this login."""
    policy = inputs.policy

    reason = skip_reason(policy, inputs.context, inputs.attributes, inputs.first_login_attribute)
    if reason is not None:
        return _allow(f"skip.{reason}")

    if policy.allow_opt_out and is_true(inputs.attributes.get(policy.opt_out_attribute_name)):
        if policy.opt_out_honored_when_insufficient or inputs.sufficient:
            return _allow("opt_out")

    if _prompted_recently(inputs):
        return _allow("reminder")

    if _outside_rollout(inputs):
        return _allow("rollout")

    if 0 < policy.max_allowed_configured <= len(inputs.configured):
        return _allow("max_allowed")

    if inputs.sufficient and not policy.offer_additional_after_sufficient:
        return _allow("sufficient", _first_login_writes(inputs))

    remaining = unconfigured_available(inputs)
    if inputs.sufficient and (not remaining or policy.prompt_timing == PromptTiming.NONE):
        return _allow("nothing_to_offer", _first_login_writes(inputs))

    if not inputs.sufficient and not remaining:
        if policy.fail_if_selection_invalid:
            return Plan(
                step="deadlock",
                outcome=OutcomeKind.FAIL,
                reason=FlowError.INTERNAL_ERROR,
                error_message=DEADLOCK_MESSAGE,
            )
        return Plan(step="deadlock", outcome=OutcomeKind.CHALLENGE, error_message=DEADLOCK_MESSAGE)

    return Plan(
        step="prompt",
        outcome=OutcomeKind.CHALLENGE,
        form=build_form(inputs),
        attribute_writes=((inputs.last_prompt_attribute, str(inputs.now_ms)),),
    )


def normalize_form(form_fields: Optional[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Turn a submitted form into ``name -> [values]``."""
    if not form_fields:
        return {}
    normalized: Dict[str, List[str]] = {}
    getlist = getattr(form_fields, "getlist", None)
    for key in form_fields.keys():
        values = getlist(key) if getlist is not None else form_fields[key]
        if values is None:
            normalized[key] = []
        elif isinstance(values, (list, tuple)):
            normalized[key] = [str(v) for v in values]
        else:
            normalized[key] = [str(values)]
    return normalized


def plan_submission(inputs: EvaluationInputs, form_fields: Optional[Mapping[str, Any]]) -> Plan:
    """Interpret the user's form submission."""
    policy = inputs.policy
    form = normalize_form(form_fields)
    requested = form.get("method", [])
    opt_out_values = form.get("optOut", [])
    opt_out_requested = bool(opt_out_values) and opt_out_values[0].strip().lower() == "on"

    validation = validate_selection(
        policy, inputs.methods, inputs.configured, requested, inputs.sufficient
    )
    if not validation.valid:
        if policy.fail_if_selection_invalid:
            return Plan(
                step="invalid",
                outcome=OutcomeKind.FAIL,
                reason=FlowError.INVALID_USER,
                form=build_form(inputs, validation.message),
                validation=validation,
            )
        return _allow("declined", _first_login_writes(inputs), validation=validation)

    next_login = policy.prompt_timing == PromptTiming.NEXT_LOGIN_TASK and inputs.sufficient
    scope = FollowUpScope.NEXT_LOGIN if next_login else FollowUpScope.SESSION
    by_id = {method.id: method for method in inputs.methods}
    tasks = tuple(
        (scope, task)
        for method_id in validation.accepted
        for task in by_id[method_id].follow_up_tasks
    )

    writes: List[Tuple[str, str]] = []
    if opt_out_requested and policy.allow_opt_out and validation.accepted:
        writes.append((policy.opt_out_attribute_name, "true"))
    writes.extend(_first_login_writes(inputs))
    return _allow("accepted", writes, tasks=tasks, validation=validation)
