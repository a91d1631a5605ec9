from flask import g, jsonify, request
from flask_login import current_user

from feedbackkit.errors import InvalidRequest
from feedbackkit.extensions import db, limiter
from feedbackkit.services import dispatch
from feedbackkit.services.feedback import (
    create_feedback,
    delete_feedback,
    get_feedback,
    list_feedback,
    serialize_one,
    update_feedback,
)
from feedbackkit.services.merge import merge_feedback
from feedbackkit.services.policy import login_required, sdk_project
from feedbackkit.services.sdk_users import register_sdk_user
from feedbackkit.utils.helpers import parse_bool
from . import bp


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest("JSON object body required")
    return data


def _viewer_id():
    return (request.headers.get("X-User-Id") or "").strip() or None


# ---- SDK (X-API-Key) ----

@bp.get("/feedbacks")
@sdk_project()
def list_feedbacks():
    items = list_feedback(
        db.session,
        g.project,
        status=request.args.get("status"),
        category=request.args.get("category"),
        include_merged=parse_bool(request.args.get("include_merged")),
        viewer_id=_viewer_id(),
    )
    return jsonify(items), 200


@bp.post("/feedbacks")
@limiter.limit("30 per minute; 500 per day")
@sdk_project(require_active=True)
def create():
    data = _payload()
    feedback, events = create_feedback(
        db.session,
        g.project,
        title=data.get("title"),
        description=data.get("description"),
        user_id=data.get("user_id"),
        user_email=data.get("user_email"),
        category=data.get("category"),
    )
    dispatch.dispatch_pending(events)
    return jsonify(serialize_one(db.session, feedback)), 201


@bp.get("/feedbacks/<feedback_id>")
@sdk_project()
def show(feedback_id):
    feedback = get_feedback(db.session, feedback_id, project=g.project)
    return jsonify(serialize_one(db.session, feedback, viewer_id=_viewer_id())), 200


@bp.post("/users/register")
@limiter.limit("60 per minute")
@sdk_project()
def register_user():
    data = _payload()
    sdk_user = register_sdk_user(db.session, g.project, data.get("user_id"), data.get("mrr"))
    return jsonify(sdk_user.to_dict()), 200


# ---- Admin (Bearer token) ----

@bp.post("/feedbacks/merge")
@login_required
def merge():
    data = _payload()
    result = merge_feedback(
        db.session,
        primary_id=data.get("primary_feedback_id"),
        secondary_ids=data.get("secondary_feedback_ids"),
        actor=current_user,
    )
    return jsonify(result.to_dict(db.session)), 200


@bp.patch("/feedbacks/<feedback_id>")
@login_required
def update(feedback_id):
    data = _payload()
    feedback = get_feedback(db.session, feedback_id)
    feedback, events = update_feedback(
        db.session,
        feedback,
        current_user,
        title=data.get("title"),
        description=data.get("description"),
        status=data.get("status"),
        category=data.get("category"),
    )
    dispatch.dispatch_pending(events)
    return jsonify(serialize_one(db.session, feedback)), 200


@bp.delete("/feedbacks/<feedback_id>")
@login_required
def delete(feedback_id):
    feedback = get_feedback(db.session, feedback_id)
    delete_feedback(db.session, feedback, current_user)
    return "", 204
