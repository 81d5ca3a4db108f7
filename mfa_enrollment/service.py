"""Enrollment engine: the two entry points called by the host flow."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .catalog import configured_method_ids, resolve_enabled
from .config import EnrollmentSettings
from .logs import StageLogger, new_request_id
from .models import Outcome, OutcomeKind
from .planner import EvaluationInputs, Plan, plan_decision, plan_submission
from .platform import EnrollmentPlatform, EnrollmentRenderer, LoginContext
from .policy import EnrollmentPolicy, parse_policy
from .rendering import HtmlRenderer
from .rollout import bucket_for
from .sufficiency import meets_minimum

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {"decide": "Decide", "submit": "Submit"}
EVENT_LABELS = {
    ("decide", "start"): "Evaluating enrollment",
    ("decide", "allow"): "Login allowed without prompt",
    ("decide", "challenge"): "Enrollment requested",
    ("decide", "fail"): "Enrollment cannot be satisfied",
    ("submit", "start"): "Processing enrollment selection",
    ("submit", "allow"): "Selection processed",
    ("submit", "fail"): "Selection rejected",
}


_log = StageLogger(LOGGER, "MFA Enrollment", STAGE_LABELS, EVENT_LABELS)


def _now_ms() -> int:
    return int(time.time() * 1000)


class EnrollmentEngine:
    """Stateless decision engine bound to one policy and one platform.

    Instances hold no per-user state; everything remembered between logins
    lives in user attributes on the platform.
    """

    def __init__(
        self,
        policy: Union[EnrollmentPolicy, Mapping[str, Any], None],
        platform: EnrollmentPlatform,
        renderer: Optional[EnrollmentRenderer] = None,
        settings: Optional[EnrollmentSettings] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.settings = settings or EnrollmentSettings()
        if isinstance(policy, EnrollmentPolicy):
            self.policy = policy
        else:
            self.policy = parse_policy(policy)
        self.platform = platform
        self.renderer = renderer or HtmlRenderer(self.settings)
        self.clock = clock or _now_ms

    # ------------------------------------------------------------------
    def decide(self, context: LoginContext) -> Outcome:
        req_id = new_request_id()
        _log("decide", "start", req_id, user=context.user_id, client=context.client_id)
        inputs = self.gather(context)
        plan = plan_decision(inputs)
        return self._apply("decide", req_id, inputs, plan)

    def decide_submission(self, context: LoginContext, form_fields: Optional[Mapping[str, Any]]) -> Outcome:
        req_id = new_request_id()
        _log("submit", "start", req_id, user=context.user_id, client=context.client_id)
        inputs = self.gather(context)
        plan = plan_submission(inputs, form_fields)
        return self._apply("submit", req_id, inputs, plan)

    # ------------------------------------------------------------------
    def gather(self, context: LoginContext) -> EvaluationInputs:
        """Read everything the planners need from the platform, once."""
        policy = self.policy
        prefix = self.settings.custom_method_prefix

        def is_registered(task_id: str) -> bool:
            return self.platform.is_follow_up_task_registered(context.realm, task_id)

        configured = frozenset(
            configured_method_ids(self.platform.get_configured_credential_types(context.user_id), prefix)
        )
        methods = resolve_enabled(policy, is_registered, prefix)
        if policy.hide_already_configured:
            methods = [method for method in methods if method.id not in configured]
        sufficient = meets_minimum(policy, methods, configured)
        available = frozenset(method.id for method in methods if method.is_available(is_registered))

        return EvaluationInputs(
            policy=policy,
            context=context,
            methods=tuple(methods),
            available_ids=available,
            configured=configured,
            sufficient=sufficient,
            attribute_values=tuple(self._read_attributes(context.user_id).items()),
            now_ms=self.clock(),
            rollout_bucket=bucket_for(policy.rollout_strategy, context.user_id),
            last_prompt_attribute=self.settings.last_prompt_attribute,
            first_login_attribute=self.settings.first_login_attribute,
        )

    def _read_attributes(self, user_id: str) -> Dict[str, Optional[str]]:
        keys = [
            self.settings.first_login_attribute,
            self.settings.last_prompt_attribute,
            self.policy.opt_out_attribute_name,
        ]
        keys.extend(key for key, _ in self.policy.skip_if_attribute_equals)
        attributes: Dict[str, Optional[str]] = {}
        for key in keys:
            if key not in attributes:
                attributes[key] = self.platform.get_user_attribute(user_id, key)
        return attributes

    def _apply(self, stage: str, req_id: str, inputs: EvaluationInputs, plan: Plan) -> Outcome:
        user_id = inputs.context.user_id
        for key, value in plan.attribute_writes:
            self.platform.set_user_attribute(user_id, key, value)
        for scope, task_id in plan.tasks:
            self.platform.register_follow_up_task(user_id, scope, task_id)

        level = logging.WARNING if plan.outcome == OutcomeKind.FAIL else logging.INFO
        _log(
            stage,
            plan.outcome.value,
            req_id,
            level=level,
            user=user_id,
            step=plan.step,
            sufficient=inputs.sufficient,
            configured=sorted(inputs.configured),
            accepted=list(plan.validation.accepted) if plan.validation else None,
            message=plan.validation.message if plan.validation else plan.error_message,
            tasks=[task for _, task in plan.tasks] or None,
        )

        if plan.outcome == OutcomeKind.ALLOW:
            return Outcome.allow()
        if plan.form is not None:
            response = self.renderer.render_form(plan.form)
        else:
            response = self.renderer.render_error(plan.error_message or "")
        if plan.outcome == OutcomeKind.FAIL:
            return Outcome.fail(plan.reason, response)
        return Outcome.challenge(response)
