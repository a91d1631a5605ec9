"""
Feedback lifecycle outside of merging: create, list, show, update, delete.

Write functions return the outbox rows they queued alongside the result; the
route dispatches them once the transaction has committed.
"""
from typing import Iterable, List, Optional, Tuple

from feedbackkit.errors import Forbidden, InvalidRequest, NotFound
from feedbackkit.models import Feedback, OutboundEvent, Project, ROLE_MEMBER
from feedbackkit.models.feedback import CATEGORY_CHOICES, CATEGORY_FEATURE_REQUEST, STATUS_CHOICES
from feedbackkit.utils.helpers import parse_uuid
from feedbackkit.utils.validators import clean_line, clean_str, is_valid_email
from .notifications import queue_feedback_created, queue_status_changed
from .policy import MANAGE_ROLES, require_role
from .repository import FeedbackRepository, transaction

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 10000


def get_feedback(session, feedback_id, project: Optional[Project] = None) -> Feedback:
    """Merged items are returned too; callers decide how to present them."""
    fid = parse_uuid(feedback_id)
    feedback = FeedbackRepository(session).get(fid) if fid else None
    if feedback is None or (project is not None and feedback.project_id != project.id):
        raise NotFound("Feedback not found")
    return feedback


def _category(raw: Optional[str]) -> str:
    if raw is None or raw == "":
        return CATEGORY_FEATURE_REQUEST
    if raw not in CATEGORY_CHOICES:
        raise InvalidRequest("Invalid category", allowed=list(CATEGORY_CHOICES))
    return raw


def create_feedback(
    session,
    project: Project,
    *,
    title: Optional[str],
    description: Optional[str],
    user_id: Optional[str],
    user_email: Optional[str] = None,
    category: Optional[str] = None,
) -> Tuple[Feedback, List[OutboundEvent]]:
    if project.is_archived:
        raise Forbidden(
            "This project is archived and cannot receive new feedback. "
            "Contact the project owner to unarchive it."
        )
    title = clean_line(title, max_len=MAX_TITLE_LENGTH)
    if not title:
        raise InvalidRequest("Title cannot be empty")
    description = clean_str(description, max_len=MAX_DESCRIPTION_LENGTH)
    if not description:
        raise InvalidRequest("Description cannot be empty")
    user_id = clean_str(user_id)
    if not user_id:
        raise InvalidRequest("User ID cannot be empty")
    user_email = clean_str(user_email, max_len=320)
    if not is_valid_email(user_email):
        raise InvalidRequest("Invalid email format")

    with transaction(session):
        feedback = Feedback(
            project_id=project.id,
            project=project,
            title=title,
            description=description,
            category=_category(category),
            user_id=user_id,
            user_email=user_email,
            vote_count=0,
        )
        session.add(feedback)
        session.flush()
        events = queue_feedback_created(session, feedback)
    return feedback, events


def list_feedback(
    session,
    project: Project,
    *,
    status: Optional[str] = None,
    category: Optional[str] = None,
    include_merged: bool = False,
    viewer_id: Optional[str] = None,
) -> List[dict]:
    """Serialized listing; unknown status/category filters are ignored."""
    repo = FeedbackRepository(session)
    items = repo.list_for_project(
        project.id,
        status=status if status in STATUS_CHOICES else None,
        category=category if category in CATEGORY_CHOICES else None,
        include_merged=include_merged,
    )
    return serialize_many(session, project, items, viewer_id=viewer_id)


def serialize_many(session, project: Project, items: Iterable[Feedback], viewer_id: Optional[str] = None) -> List[dict]:
    items = list(items)
    repo = FeedbackRepository(session)
    ids = [f.id for f in items]
    voters = repo.votes_by_feedback(ids)
    counts = repo.comment_counts(ids)

    user_ids = {f.user_id for f in items}
    for uids in voters.values():
        user_ids.update(uids)
    mrr = repo.mrr_by_user(project.id, user_ids)

    out = []
    for f in items:
        voter_ids = voters.get(f.id, [])
        total = (mrr.get(f.user_id) or 0) + sum(mrr.get(uid) or 0 for uid in voter_ids)
        out.append(f.to_dict(
            has_voted=bool(viewer_id) and viewer_id in voter_ids,
            comment_count=counts.get(f.id, 0),
            total_mrr=total if total > 0 else None,
        ))
    return out


def serialize_one(session, feedback: Feedback, viewer_id: Optional[str] = None) -> dict:
    return serialize_many(session, feedback.project, [feedback], viewer_id=viewer_id)[0]


def update_feedback(
    session,
    feedback: Feedback,
    actor,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
) -> Tuple[Feedback, List[OutboundEvent]]:
    """Partial update; a status change queues status-change notifications."""
    require_role(session, feedback.project, actor, (*MANAGE_ROLES, ROLE_MEMBER))

    if title is not None:
        title = clean_line(title, max_len=MAX_TITLE_LENGTH)
        if not title:
            raise InvalidRequest("Title cannot be empty")
    if description is not None:
        description = clean_str(description, max_len=MAX_DESCRIPTION_LENGTH)
        if not description:
            raise InvalidRequest("Description cannot be empty")
    if status is not None:
        if status not in STATUS_CHOICES:
            raise InvalidRequest("Invalid status", allowed=list(STATUS_CHOICES))
        if not feedback.project.allows_status(status):
            raise InvalidRequest(
                f"Status '{status}' is not enabled for this project",
                allowed=list(feedback.project.allowed_statuses or []),
            )
    if category is not None:
        category = _category(category)

    old_status = feedback.status
    events: List[OutboundEvent] = []
    with transaction(session):
        if title is not None:
            feedback.title = title
        if description is not None:
            feedback.description = description
        if category is not None:
            feedback.category = category
        if status is not None:
            feedback.status = status
        session.flush()
        if status is not None and status != old_status:
            voters = FeedbackRepository(session).notify_voters(feedback.id)
            events = queue_status_changed(session, feedback, old_status, voters=voters)
    return feedback, events


def delete_feedback(session, feedback: Feedback, actor) -> None:
    """Owner/admin only; votes and comments go with it."""
    require_role(session, feedback.project, actor, MANAGE_ROLES)
    with transaction(session):
        remove_feedback(session, feedback)


def remove_feedback(session, feedback: Feedback) -> None:
    """
    Delete an item with its votes and comments. Items merged into it, and
    whatever they had absorbed before, are removed first so no pointer dangles.
    """
    for absorbed in FeedbackRepository(session).merged_into(feedback.id):
        remove_feedback(session, absorbed)
    session.delete(feedback)
    session.flush()
