from __future__ import annotations

import logging

import pytest

from mfa_enrollment import rollout
from mfa_enrollment.catalog import BUILTIN_METHOD_IDS
from mfa_enrollment.config import DEFAULT_FIRST_LOGIN_ATTRIBUTE, DEFAULT_LAST_PROMPT_ATTRIBUTE
from mfa_enrollment.models import EnrollmentForm, FlowError, FollowUpScope, OutcomeKind
from mfa_enrollment.planner import DAY_MS, DEADLOCK_MESSAGE
from mfa_enrollment.policy import DEFAULT_OPT_OUT_ATTRIBUTE
from mfa_enrollment.rendering import RenderedPage
from mfa_enrollment.service import EnrollmentEngine


# Pre-form path -------------------------------------------------------------
def test_empty_config_prompts_user_without_credentials(make_engine, platform, context, now_ms):
    outcome = make_engine({}).decide(context)

    assert outcome.kind == OutcomeKind.CHALLENGE
    form = outcome.response
    assert isinstance(form, EnrollmentForm)
    assert [f.id for f in form.fields] == list(BUILTIN_METHOD_IDS)
    assert not any(f.configured for f in form.fields)
    assert form.sufficient is False
    assert form.allow_opt_out is True
    assert platform.attributes[DEFAULT_LAST_PROMPT_ATTRIBUTE] == str(now_ms)


def test_first_login_only_skips_everything_once_completed(make_engine, platform, context):
    platform.attributes[DEFAULT_FIRST_LOGIN_ATTRIBUTE] = "true"
    outcome = make_engine({"enforce_on_first_login_only": "true"}).decide(context)

    assert outcome.kind == OutcomeKind.ALLOW
    assert platform.writes == []
    assert DEFAULT_LAST_PROMPT_ATTRIBUTE not in platform.attributes


def test_client_skip_precedes_first_login_skip(make_engine, platform, context):
    platform.attributes[DEFAULT_FIRST_LOGIN_ATTRIBUTE] = "true"
    engine = make_engine({"only_for_clients": "other-app", "enforce_on_first_login_only": "true"})

    assert engine.gather(context).attributes[DEFAULT_FIRST_LOGIN_ATTRIBUTE] == "true"
    assert engine.decide(context).kind == OutcomeKind.ALLOW
    assert platform.writes == []


def test_sufficient_user_without_additional_offer_is_allowed(make_engine, platform, context):
    platform.credential_types = {"otp"}
    outcome = make_engine(
        {"offer_configure_additional_methods": "false", "enforce_on_first_login_only": "true"}
    ).decide(context)

    assert outcome.kind == OutcomeKind.ALLOW
    assert platform.writes == [(DEFAULT_FIRST_LOGIN_ATTRIBUTE, "true")]


def test_sufficient_user_is_offered_remaining_methods(make_engine, platform, context):
    platform.credential_types = {"otp"}
    outcome = make_engine({}).decide(context)

    assert outcome.kind == OutcomeKind.CHALLENGE
    form = outcome.response
    assert form.sufficient is True
    configured = [f.id for f in form.fields if f.configured]
    assert configured == ["totp"]


def test_hidden_configured_methods_are_left_off_the_form(make_engine, platform, context):
    platform.credential_types = {"otp"}
    outcome = make_engine({"hide_already_configured_methods": "true"}).decide(context)
    assert "totp" not in [f.id for f in outcome.response.fields]


def test_sufficiency_is_measured_after_hiding_configured_methods(make_engine, platform, context):
    platform.credential_types = {"otp"}
    engine = make_engine(
        {"hide_already_configured_methods": "true", "offer_configure_additional_methods": "false"}
    )
    inputs = engine.gather(context)
    assert "totp" not in [m.id for m in inputs.methods]
    assert inputs.sufficient is False

    outcome = engine.decide(context)
    assert outcome.kind == OutcomeKind.CHALLENGE
    assert outcome.response.sufficient is False


def test_gathered_attributes_are_read_only(make_engine, platform, context):
    platform.attributes["tier"] = "gold"
    inputs = make_engine({"skip_if_attribute_equals": "tier=silver"}).gather(context)

    assert inputs.attributes["tier"] == "gold"
    with pytest.raises(TypeError):
        inputs.attributes["tier"] = "silver"
    assert inputs.attributes["tier"] == "gold"


@pytest.mark.parametrize(
    "properties",
    [
        {"post_auth_prompt_mode": "none"},
        {"enabled_mfa_types": "totp"},
    ],
)
def test_sufficient_user_with_nothing_to_offer_is_allowed(make_engine, platform, context, properties):
    platform.credential_types = {"otp"}
    assert make_engine(properties).decide(context).kind == OutcomeKind.ALLOW


def test_opt_out_respected_only_when_sufficient(make_engine, platform, context):
    platform.attributes[DEFAULT_OPT_OUT_ATTRIBUTE] = "true"
    assert make_engine({}).decide(context).kind == OutcomeKind.CHALLENGE

    platform.credential_types = {"otp"}
    assert make_engine({}).decide(context).kind == OutcomeKind.ALLOW


def test_opt_out_can_override_deficiency_when_configured(make_engine, platform, context):
    platform.attributes["mfa.optOut"] = "true"
    engine = make_engine(
        {"opt_out_attribute_name": "mfa.optOut", "opt_out_respected_when_not_sufficient": "true"}
    )
    assert engine.decide(context).kind == OutcomeKind.ALLOW
    assert make_engine({"allow_user_opt_out": "false"}).decide(context).kind == OutcomeKind.CHALLENGE


def test_reminder_throttles_repeat_prompts(make_engine, platform, context, now_ms):
    engine = make_engine({"remind_every_days": "7"})
    platform.attributes[DEFAULT_LAST_PROMPT_ATTRIBUTE] = str(now_ms - 2 * DAY_MS)
    assert engine.decide(context).kind == OutcomeKind.ALLOW

    platform.attributes[DEFAULT_LAST_PROMPT_ATTRIBUTE] = str(now_ms - 8 * DAY_MS)
    assert engine.decide(context).kind == OutcomeKind.CHALLENGE
    assert platform.attributes[DEFAULT_LAST_PROMPT_ATTRIBUTE] == str(now_ms)


def test_malformed_reminder_timestamp_counts_as_never_prompted(make_engine, platform, context):
    platform.attributes[DEFAULT_LAST_PROMPT_ATTRIBUTE] = "last tuesday"
    assert make_engine({"remind_every_days": "7"}).decide(context).kind == OutcomeKind.CHALLENGE


def test_stable_rollout_is_deterministic(make_engine, platform, context):
    platform.credential_types = {"otp"}
    bucket = rollout.stable_bucket(context.user_id)
    engine = make_engine({"rollout_percentage": str(bucket)})

    outcomes = {engine.decide(context).kind for _ in range(5)}
    assert outcomes == {OutcomeKind.ALLOW}

    engine = make_engine({"rollout_percentage": str(bucket + 1)})
    assert engine.decide(context).kind == OutcomeKind.CHALLENGE


def test_stable_bucket_is_pure():
    assert rollout.stable_bucket("user-1") == rollout.stable_bucket("user-1")
    assert 0 <= rollout.stable_bucket("someone-else") < 100


def test_random_rollout_draws_each_time(monkeypatch, make_engine, platform, context):
    platform.credential_types = {"otp"}
    draws = iter([10, 90])
    monkeypatch.setattr(rollout, "random_bucket", lambda: next(draws))
    engine = make_engine({"rollout_percentage": "50", "rollout_strategy": "random"})

    assert engine.decide(context).kind == OutcomeKind.CHALLENGE
    assert engine.decide(context).kind == OutcomeKind.ALLOW


def test_insufficient_users_bypass_rollout(make_engine, platform, context):
    assert make_engine({"rollout_percentage": "0"}).decide(context).kind == OutcomeKind.CHALLENGE
    engine = make_engine({"rollout_percentage": "0", "bypass_rollout_if_not_sufficient": "false"})
    assert engine.decide(context).kind == OutcomeKind.ALLOW


def test_max_allowed_guard(make_engine, platform, context):
    platform.credential_types = {"otp", "sms-otp"}
    assert make_engine({"max_allowed_mfa_methods": "2"}).decide(context).kind == OutcomeKind.ALLOW
    assert make_engine({"max_allowed_mfa_methods": "3"}).decide(context).kind == OutcomeKind.CHALLENGE


def test_deadlock_fails_when_strict(make_engine, platform, context):
    platform.registered_tasks = set()
    outcome = make_engine({}).decide(context)

    assert outcome.kind == OutcomeKind.FAIL
    assert outcome.reason == FlowError.INTERNAL_ERROR
    assert outcome.response == {"error": DEADLOCK_MESSAGE}
    assert platform.writes == []


def test_deadlock_challenges_when_lenient(make_engine, platform, context):
    platform.registered_tasks = set()
    outcome = make_engine({"fail_if_selection_insufficient": "false"}).decide(context)

    assert outcome.kind == OutcomeKind.CHALLENGE
    assert outcome.reason is None
    assert outcome.response == {"error": DEADLOCK_MESSAGE}


def test_default_renderer_produces_html(platform, context, now_ms):
    outcome = EnrollmentEngine({}, platform, clock=lambda: now_ms).decide(context)
    page = outcome.response
    assert isinstance(page, RenderedPage)
    assert page.status == 200
    assert 'value="totp"' in page.body


# Post-submission path --------------------------------------------------------
def test_selected_method_registers_session_tasks(make_engine, platform, context):
    outcome = make_engine({"enabled_mfa_types": "totp"}).decide_submission(context, {"method": ["totp"]})

    assert outcome.kind == OutcomeKind.ALLOW
    assert platform.tasks == [(FollowUpScope.SESSION, "CONFIGURE_TOTP")]


def test_next_login_timing_applies_only_once_sufficient(make_engine, platform, context):
    engine = make_engine({"post_auth_prompt_mode": "next_login_task"})
    engine.decide_submission(context, {"method": "webauthn"})
    assert platform.tasks == [(FollowUpScope.SESSION, "webauthn-register")]

    platform.tasks.clear()
    platform.credential_types = {"otp"}
    engine.decide_submission(context, {"method": "webauthn"})
    assert platform.tasks == [(FollowUpScope.NEXT_LOGIN, "webauthn-register")]


def test_custom_method_registers_its_alias(make_engine, platform, context):
    platform.registered_tasks.add("push-setup")
    engine = make_engine({"enabled_mfa_types": "custom:push-setup"})
    engine.decide_submission(context, {"method": ["custom:push-setup"]})
    assert platform.tasks == [(FollowUpScope.SESSION, "push-setup")]


def test_empty_selection_fails_when_strict(make_engine, platform, context):
    outcome = make_engine({"enabled_mfa_types": "totp"}).decide_submission(context, {})

    assert outcome.kind == OutcomeKind.FAIL
    assert outcome.reason == FlowError.INVALID_USER
    assert outcome.response.error_message == "Select at least one method."
    assert platform.tasks == []


def test_exactly_one_rejects_two_methods(make_engine, platform, context):
    engine = make_engine({"selection_mode": "exactly_one", "fail_if_selection_insufficient": "true"})
    outcome = engine.decide_submission(context, {"method": ["totp", "webauthn"]})

    assert outcome.kind == OutcomeKind.FAIL
    assert outcome.response.error_message == "Select exactly one method."
    assert [f.id for f in outcome.response.fields] == list(BUILTIN_METHOD_IDS)


def test_invalid_selection_passes_through_when_lenient(make_engine, platform, context):
    engine = make_engine({"fail_if_selection_insufficient": "false", "enforce_on_first_login_only": "true"})
    outcome = engine.decide_submission(context, {"method": ["nope"]})

    assert outcome.kind == OutcomeKind.ALLOW
    assert platform.tasks == []
    assert platform.writes == [(DEFAULT_FIRST_LOGIN_ATTRIBUTE, "true")]


def test_opt_out_needs_an_accepted_method(make_engine, platform, context):
    outcome = make_engine({"min_required_mfa_methods": "0"}).decide_submission(context, {"optOut": "on"})

    assert outcome.kind == OutcomeKind.ALLOW
    assert DEFAULT_OPT_OUT_ATTRIBUTE not in platform.attributes


def test_opt_out_persisted_alongside_accepted_method(make_engine, platform, context):
    engine = make_engine({})
    engine.decide_submission(context, {"method": ["totp"], "optOut": "ON"})
    assert platform.attributes[DEFAULT_OPT_OUT_ATTRIBUTE] == "true"

    platform.attributes.clear()
    make_engine({"allow_user_opt_out": "false"}).decide_submission(context, {"method": ["totp"], "optOut": "on"})
    assert DEFAULT_OPT_OUT_ATTRIBUTE not in platform.attributes


def test_gather_reads_platform_once_per_call(make_engine, platform, context, now_ms):
    platform.credential_types = {"otp", "custom:legacy"}
    inputs = make_engine({"skip_if_attribute_equals": "tier=gold"}).gather(context)

    assert inputs.configured == frozenset({"totp", "custom:legacy"})
    assert inputs.sufficient is True
    assert "tier" in inputs.attributes
    assert inputs.now_ms == now_ms


def test_decisions_are_logged_with_request_ids(make_engine, context, caplog):
    with caplog.at_level(logging.INFO, logger="mfa_enrollment.service"):
        make_engine({}).decide(context)

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0].startswith("[MFA Enrollment: Decide]: Evaluating enrollment")
    assert '"step": "prompt"' in messages[-1]
    assert '"request_id"' in messages[-1]
