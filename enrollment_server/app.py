"""Flask application exposing the enrollment decision endpoints."""

from __future__ import annotations

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from mfa_enrollment import POLICY_PROPERTIES, EnrollmentEngine, Outcome, OutcomeKind, parse_policy
from mfa_enrollment.logs import StageLogger, new_request_id

from .config import ServerSettings
from .database import Database
from .schemas import CredentialRequest, DecideRequest, EnrollmentResponse, RoleRequest, SubmitRequest
from .services import (
    SqlEnrollmentPlatform,
    add_credential,
    build_context,
    ensure_user,
    grant_role,
)

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {
    "decide": "Decide",
    "submit": "Submit",
    "admin": "Admin",
}

EVENT_LABELS = {
    ("decide", "start"): "Deciding enrollment",
    ("decide", "done"): "Enrollment decided",
    ("submit", "start"): "Submitting enrollment selection",
    ("submit", "done"): "Enrollment selection handled",
    ("admin", "credential"): "Stored credential recorded",
    ("admin", "role"): "Role granted",
    ("admin", "invalid"): "Invalid request body",
}


_log = StageLogger(LOGGER, "Enrollment Server", STAGE_LABELS, EVENT_LABELS)


def _respond(outcome: Outcome, session_tasks: list[str]):
    response = EnrollmentResponse(
        success=outcome.kind != OutcomeKind.FAIL,
        outcome=outcome.kind.value,
        reason=outcome.reason.value if outcome.reason else None,
        page=outcome.response.model_dump() if outcome.response is not None else None,
        session_tasks=session_tasks,
    )
    status = 403 if outcome.kind == OutcomeKind.FAIL else 200
    return jsonify(response.model_dump()), status


def create_app(settings: ServerSettings | None = None) -> Flask:
    settings = settings or ServerSettings()
    db = Database(settings)
    db.create_all()
    policy = parse_policy(settings.policy)

    app = Flask(__name__)
    app.extensions["enrollment_db"] = db
    CORS(app)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    @app.post("/enrollment/decide")
    def decide():
        payload = DecideRequest.model_validate(request.get_json(silent=True) or {})
        req_id = new_request_id()
        _log("decide", "start", req_id, user=payload.username, client=payload.client_id)
        with db.session() as session:
            user = ensure_user(session, payload.username)
            context = build_context(session, user, payload, settings)
            platform = SqlEnrollmentPlatform(session, settings)
            outcome = EnrollmentEngine(policy, platform).decide(context)
        _log("decide", "done", req_id, user=payload.username, outcome=outcome.kind.value)
        return _respond(outcome, platform.session_tasks)

    @app.post("/enrollment/submit")
    def submit():
        payload = SubmitRequest.model_validate(request.get_json(silent=True) or {})
        req_id = new_request_id()
        _log("submit", "start", req_id, user=payload.username, client=payload.client_id)
        with db.session() as session:
            user = ensure_user(session, payload.username)
            context = build_context(session, user, payload, settings)
            platform = SqlEnrollmentPlatform(session, settings)
            outcome = EnrollmentEngine(policy, platform).decide_submission(context, payload.form)
        _log(
            "submit",
            "done",
            req_id,
            user=payload.username,
            outcome=outcome.kind.value,
            session_tasks=platform.session_tasks,
        )
        return _respond(outcome, platform.session_tasks)

    @app.post("/credentials")
    def record_credential():
        payload = CredentialRequest.model_validate(request.get_json(silent=True) or {})
        req_id = new_request_id()
        with db.session() as session:
            user = ensure_user(session, payload.username)
            add_credential(session, user, payload.type)
        _log("admin", "credential", req_id, user=payload.username, type=payload.type)
        return jsonify(EnrollmentResponse(success=True).model_dump())

    @app.post("/roles")
    def record_role():
        payload = RoleRequest.model_validate(request.get_json(silent=True) or {})
        req_id = new_request_id()
        with db.session() as session:
            user = ensure_user(session, payload.username)
            grant_role(session, user, payload.role)
        _log("admin", "role", req_id, user=payload.username, role=payload.role)
        return jsonify(EnrollmentResponse(success=True).model_dump())

    @app.get("/enrollment/properties")
    def properties():
        return jsonify([prop.model_dump() for prop in POLICY_PROPERTIES])

    @app.errorhandler(ValidationError)
    def handle_invalid_body(error: ValidationError):
        _log("admin", "invalid", new_request_id(), level=logging.WARNING, errors=error.error_count())
        return (
            jsonify(EnrollmentResponse(success=False, message="Invalid request body").model_dump()),
            400,
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
