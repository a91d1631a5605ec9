from flask import g, jsonify
from flask_login import current_user

from feedbackkit.extensions import db, limiter
from feedbackkit.services import dispatch
from feedbackkit.services.comments import add_comment, delete_comment, list_comments
from feedbackkit.services.feedback import get_feedback
from feedbackkit.services.policy import MANAGE_ROLES, login_required, require_role, sdk_project
from feedbackkit.utils.helpers import parse_bool, parse_uuid
from . import bp
from .routes import _payload


@bp.get("/feedbacks/<feedback_id>/comments")
@sdk_project()
def index(feedback_id):
    feedback = get_feedback(db.session, feedback_id, project=g.project)
    return jsonify([c.to_dict() for c in list_comments(db.session, feedback)]), 200


@bp.post("/feedbacks/<feedback_id>/comments")
@limiter.limit("30 per minute")
@sdk_project()
def create_comment(feedback_id):
    data = _payload()
    feedback = get_feedback(db.session, feedback_id, project=g.project)
    comment, events = add_comment(
        db.session,
        feedback,
        data.get("user_id"),
        data.get("content"),
        is_admin=parse_bool(data.get("is_admin")),
    )
    dispatch.dispatch_pending(events)
    return jsonify(comment.to_dict()), 201


@bp.delete("/feedbacks/<feedback_id>/comments/<comment_id>")
@login_required
def remove_comment(feedback_id, comment_id):
    feedback = get_feedback(db.session, feedback_id)
    require_role(db.session, feedback.project, current_user, MANAGE_ROLES)
    delete_comment(db.session, feedback, parse_uuid(comment_id))
    return "", 204
