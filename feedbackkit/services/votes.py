import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError

from feedbackkit.errors import AlreadyMerged, Conflict, Forbidden, InvalidRequest, NotFound
from feedbackkit.models import Feedback, Vote
from feedbackkit.models.feedback import CLOSED_STATUSES
from feedbackkit.utils.helpers import parse_uuid
from feedbackkit.utils.validators import clean_str, is_valid_email
from .repository import FeedbackRepository, transaction


def _lock(repo: FeedbackRepository, feedback: Feedback) -> Feedback:
    locked = repo.get_for_update([feedback.id]).get(feedback.id)
    if locked is None:
        raise NotFound("Feedback not found", feedback_id=feedback.id)
    return locked


def _check_open(feedback: Feedback) -> None:
    if feedback.project.is_archived:
        raise Forbidden("Cannot vote on feedback in an archived project")
    if feedback.is_merged:
        raise AlreadyMerged(
            "Feedback has been merged",
            feedback_id=feedback.id,
            merged_into_id=feedback.merged_into_id,
        )


def _result(feedback: Feedback, has_voted: bool) -> dict:
    return {"feedback_id": str(feedback.id), "vote_count": feedback.vote_count, "has_voted": has_voted}


def cast_vote(
    session,
    feedback: Feedback,
    user_id: Optional[str],
    email: Optional[str] = None,
    notify_status_change: bool = False,
) -> dict:
    user_id = clean_str(user_id)
    if not user_id:
        raise InvalidRequest("user_id is required")
    email = clean_str(email, max_len=320)
    if not is_valid_email(email):
        raise InvalidRequest("Invalid email format")
    notify = bool(notify_status_change and email)

    repo = FeedbackRepository(session)
    with transaction(session):
        feedback = _lock(repo, feedback)
        _check_open(feedback)
        if feedback.status in CLOSED_STATUSES:
            raise Forbidden(f"Cannot vote on {feedback.status} feedback", status=feedback.status)
        if repo.find_vote(feedback.id, user_id) is not None:
            raise Conflict("User has already voted on this feedback")

        repo.add(Vote(
            feedback_id=feedback.id,
            user_id=user_id,
            email=email,
            notify_status_change=notify,
            permission_key=uuid.uuid4() if notify else None,
        ))
        try:
            repo.flush()
        except IntegrityError:
            raise Conflict("User has already voted on this feedback")
        feedback.vote_count = (feedback.vote_count or 0) + 1

    return _result(feedback, has_voted=True)


def remove_vote(session, feedback: Feedback, user_id: Optional[str]) -> dict:
    user_id = clean_str(user_id)
    if not user_id:
        raise InvalidRequest("user_id is required")

    repo = FeedbackRepository(session)
    with transaction(session):
        feedback = _lock(repo, feedback)
        _check_open(feedback)
        vote = repo.find_vote(feedback.id, user_id)
        if vote is None:
            raise NotFound("Vote not found")
        repo.delete(vote)
        feedback.vote_count = max(0, (feedback.vote_count or 0) - 1)

    return _result(feedback, has_voted=False)


def unsubscribe(session, key) -> Vote:
    """One-click opt-out from status-change emails, keyed by the vote's permission_key."""
    permission_key = parse_uuid(key)
    if permission_key is None:
        raise InvalidRequest("Invalid unsubscribe link")

    repo = FeedbackRepository(session)
    with transaction(session):
        vote = repo.find_vote_by_permission_key(permission_key)
        if vote is None:
            raise NotFound("This unsubscribe link is invalid or has already been used")
        vote.notify_status_change = False
        vote.permission_key = None
    return vote
