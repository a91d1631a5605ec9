from flask import g, jsonify, render_template, request

from feedbackkit.errors import ServiceError
from feedbackkit.extensions import db, limiter
from feedbackkit.services.feedback import get_feedback
from feedbackkit.services.policy import sdk_project
from feedbackkit.services.votes import cast_vote, remove_vote, unsubscribe
from feedbackkit.utils.helpers import parse_bool
from . import bp
from .routes import _payload


@bp.post("/feedbacks/<feedback_id>/votes")
@limiter.limit("60 per minute")
@sdk_project()
def vote(feedback_id):
    data = _payload()
    feedback = get_feedback(db.session, feedback_id, project=g.project)
    result = cast_vote(
        db.session,
        feedback,
        data.get("user_id") or request.headers.get("X-User-Id"),
        email=data.get("email"),
        notify_status_change=parse_bool(data.get("notify_status_change")),
    )
    return jsonify(result), 200


@bp.delete("/feedbacks/<feedback_id>/votes")
@limiter.limit("60 per minute")
@sdk_project()
def unvote(feedback_id):
    data = _payload()
    feedback = get_feedback(db.session, feedback_id, project=g.project)
    result = remove_vote(db.session, feedback, data.get("user_id") or request.headers.get("X-User-Id"))
    return jsonify(result), 200


@bp.get("/votes/unsubscribe")
@limiter.limit("30 per minute")
def unsubscribe_page():
    """One-click link from status-change emails; renders HTML, not JSON."""
    try:
        vote = unsubscribe(db.session, request.args.get("key"))
    except ServiceError as e:
        return render_template("votes/unsubscribe.html", ok=False, message=e.message), e.status_code
    title = vote.feedback.title if vote.feedback else None
    return render_template("votes/unsubscribe.html", ok=True, feedback_title=title), 200
