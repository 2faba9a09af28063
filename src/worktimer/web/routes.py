"""Route handlers — map URLs onto SessionStore and Predictor calls."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from worktimer.models import PAUSE_REASONS, SESSION_STATUSES
from worktimer.predictor import Predictor
from worktimer.store import SessionStore

bp = Blueprint("api", __name__, url_prefix="/api")


def _store() -> SessionStore:
    return current_app.extensions["worktimer_store"]


def _int_arg(value, name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an integer")


@bp.route("/sessions")
def list_sessions():
    """Sessions, optionally filtered by scope, status and work_type."""
    status = request.args.get("status")
    if status and status not in SESSION_STATUSES:
        abort(400, description=f"unknown status: {status}")
    sessions = _store().list_sessions(
        scope=request.args.get("scope"),
        status=status,
        work_type=request.args.get("work_type"),
        limit=_int_arg(request.args.get("limit"), "limit"),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions]})


@bp.route("/sessions", methods=["POST"])
def create_session():
    """Start a session. Body: {feature_id, description, scope?, work_type?}."""
    body = request.get_json(silent=True) or {}
    if not body.get("feature_id"):
        abort(400, description="feature_id is required")
    scope = body.get("scope") or current_app.config["DEFAULT_SCOPE"] or "global"
    session = _store().create_session(
        feature_id=body["feature_id"],
        description=body.get("description", ""),
        scope=scope,
        work_type=body.get("work_type"),
    )
    return jsonify({"session": session.to_dict()}), 201


@bp.route("/sessions/<session_id>")
def session_detail(session_id):
    """Single session with its segments, metric snapshots and duration."""
    store = _store()
    session = store.get_session(session_id)
    return jsonify(
        {
            "session": session.to_dict(),
            "segments": [s.to_dict() for s in store.get_segments(session_id)],
            "metrics": [m.to_dict() for m in store.get_metrics(session_id)],
            "duration_seconds": store.get_duration_seconds(session_id),
        }
    )


@bp.route("/sessions/<session_id>/pause", methods=["POST"])
def pause_session(session_id):
    body = request.get_json(silent=True) or {}
    reason = body.get("reason", "unknown")
    if reason not in PAUSE_REASONS:
        abort(400, description=f"unknown pause reason: {reason}")
    session = _store().pause_session(session_id, reason)
    return jsonify({"session": session.to_dict()})


@bp.route("/sessions/<session_id>/resume", methods=["POST"])
def resume_session(session_id):
    session = _store().resume_session(session_id)
    return jsonify({"session": session.to_dict()})


@bp.route("/sessions/<session_id>/complete", methods=["POST"])
def complete_session(session_id):
    """Complete a session. Body: {satisfaction?, notes?, metrics?}."""
    body = request.get_json(silent=True) or {}
    metrics = body.get("metrics")
    if metrics is not None and not isinstance(metrics, dict):
        abort(400, description="metrics must be an object")
    store = _store()
    session = store.complete_session(
        session_id,
        satisfaction=_int_arg(body.get("satisfaction"), "satisfaction"),
        notes=body.get("notes"),
        metrics=metrics,
    )
    comparison = Predictor(store).compare(session.total_active_seconds, session.work_type)
    return jsonify({"session": session.to_dict(), "comparison": comparison})


@bp.route("/estimate")
def estimate():
    """Duration estimate for ?work_type=&complexity=."""
    result = Predictor(_store()).get_estimate(
        work_type=request.args.get("work_type") or None,
        complexity_rating=_int_arg(request.args.get("complexity"), "complexity"),
    )
    return jsonify(result.to_dict())
