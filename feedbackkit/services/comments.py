from typing import List, Optional, Tuple

from feedbackkit.errors import Forbidden, InvalidRequest, NotFound
from feedbackkit.models import Comment, Feedback, OutboundEvent
from feedbackkit.utils.validators import clean_str
from .notifications import queue_comment_created
from .repository import FeedbackRepository, transaction

MAX_COMMENT_LENGTH = 5000


def list_comments(session, feedback: Feedback) -> List[Comment]:
    return FeedbackRepository(session).comments(feedback.id)


def add_comment(
    session,
    feedback: Feedback,
    user_id: Optional[str],
    content: Optional[str],
    is_admin: bool = False,
) -> Tuple[Comment, List[OutboundEvent]]:
    """Returns the comment plus the outbox rows to dispatch once committed."""
    content = clean_str(content, max_len=MAX_COMMENT_LENGTH)
    if not content:
        raise InvalidRequest("Comment content cannot be empty")
    user_id = clean_str(user_id)
    if not user_id:
        raise InvalidRequest("user_id is required")
    if feedback.project.is_archived:
        raise Forbidden("Cannot add comments to feedback in an archived project")

    with transaction(session):
        comment = Comment(feedback_id=feedback.id, user_id=user_id, content=content, is_admin=bool(is_admin))
        session.add(comment)
        session.flush()
        events = queue_comment_created(session, feedback, comment)
    return comment, events


def delete_comment(session, feedback: Feedback, comment_id) -> None:
    repo = FeedbackRepository(session)
    comment = repo.get_comment(comment_id) if comment_id else None
    if comment is None or comment.feedback_id != feedback.id:
        raise NotFound("Comment not found")
    if feedback.project.is_archived:
        raise Forbidden("Cannot delete comments in an archived project")
    with transaction(session):
        repo.delete(comment)
