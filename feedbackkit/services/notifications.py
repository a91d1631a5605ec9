"""
Outbox writers. Each function adds `OutboundEvent` rows to the caller's
session and returns them; the caller commits them together with the change
that caused them and then hands the ids to `dispatch.dispatch_pending`.

Payloads carry everything the email/Slack message needs. Integration
credentials (Slack URL, Trello token) are read from the project at delivery
time and never copied into the payload.
"""
from typing import List, Optional

from sqlalchemy import select

from feedbackkit.models import Comment, Feedback, OutboundEvent, Project, ProjectMember, User
from feedbackkit.models.outbound_event import CHANNEL_EMAIL, CHANNEL_SLACK, CHANNEL_TRELLO
from .email import absolute_url

EVENT_FEEDBACK_CREATED = "feedback.created"
EVENT_COMMENT_CREATED = "comment.created"
EVENT_STATUS_CHANGED = "feedback.status_changed"

TRELLO_CREATE_CARD = "create_card"
TRELLO_ADD_COMMENT = "add_comment"

STATUS_EMOJI = {
    "approved": "✅",
    "in_progress": "🔄",
    "completed": "🎉",
    "rejected": "❌",
}
STATUS_MESSAGES = {
    "approved": "Your feedback has been approved and will be considered for implementation.",
    "in_progress": "Great news! Work has started on your feedback.",
    "completed": "Your feedback has been implemented!",
    "rejected": "After review, this feedback will not be implemented at this time.",
}


def format_status(status: str) -> str:
    return (status or "").replace("_", " ").title()


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _team_emails(session, project: Project, flag: str) -> List[str]:
    """Owner + members whose `flag` preference (e.g. notify_new_comments) is on."""
    users = [project.owner] if project.owner else []
    users += session.execute(
        select(User)
        .join(ProjectMember, ProjectMember.user_id == User.id)
        .where(ProjectMember.project_id == project.id)
    ).scalars().all()

    seen, out = set(), []
    for u in users:
        if not u.is_active or not getattr(u, flag, False):
            continue
        email = (u.email or "").lower()
        if email and email not in seen:
            seen.add(email)
            out.append(email)
    return out


def _event(session, project: Project, event_type: str, channel: str, payload: dict) -> OutboundEvent:
    ev = OutboundEvent(project_id=project.id, event_type=event_type, channel=channel, payload=payload)
    session.add(ev)
    return ev


def queue_feedback_created(session, feedback: Feedback) -> List[OutboundEvent]:
    project = feedback.project
    events = []
    subject = f"[{project.name}] New feedback: {feedback.title}"
    context = {
        "project_name": project.name,
        "feedback_title": feedback.title,
        "feedback_category": feedback.category.replace("_", " "),
        "feedback_description": _truncate(feedback.description, 200),
    }
    for email in _team_emails(session, project, "notify_new_feedback"):
        events.append(_event(session, project, EVENT_FEEDBACK_CREATED, CHANNEL_EMAIL, {
            "to": email, "subject": subject, "template": "new_feedback", "context": context,
        }))

    if project.slack_webhook_url and project.slack_notify_new_feedback:
        events.append(_event(session, project, EVENT_FEEDBACK_CREATED, CHANNEL_SLACK, {
            "text": f":bulb: *New feedback in {project.name}*\n*{feedback.title}* ({context['feedback_category']})\n{context['feedback_description']}",
        }))

    if project.trello_enabled and project.trello_list_id:
        events.append(_event(session, project, EVENT_FEEDBACK_CREATED, CHANNEL_TRELLO, {
            "action": TRELLO_CREATE_CARD,
            "feedback_id": str(feedback.id),
            "name": feedback.title,
            "desc": build_card_description(feedback),
        }))
    return events


def queue_comment_created(session, feedback: Feedback, comment: Comment) -> List[OutboundEvent]:
    project = feedback.project
    events = []
    author = "Admin" if comment.is_admin else "User"
    subject = f"[{project.name}] New comment on: {feedback.title}"
    context = {
        "project_name": project.name,
        "feedback_title": feedback.title,
        "comment_content": _truncate(comment.content, 300),
        "commenter_name": author,
    }
    for email in _team_emails(session, project, "notify_new_comments"):
        events.append(_event(session, project, EVENT_COMMENT_CREATED, CHANNEL_EMAIL, {
            "to": email, "subject": subject, "template": "new_comment", "context": context,
        }))

    if project.slack_webhook_url and project.slack_notify_new_comments:
        events.append(_event(session, project, EVENT_COMMENT_CREATED, CHANNEL_SLACK, {
            "text": f":speech_balloon: *New comment on {feedback.title}* ({project.name})\n>{context['comment_content']}\n_{author}_",
        }))

    if project.trello_enabled and project.trello_sync_comments and feedback.trello_card_id:
        events.append(_event(session, project, EVENT_COMMENT_CREATED, CHANNEL_TRELLO, {
            "action": TRELLO_ADD_COMMENT,
            "feedback_id": str(feedback.id),
            "card_id": feedback.trello_card_id,
            "text": f"**[{author}] Comment:**\n\n{comment.content}\n\n---\n_Synced from FeedbackKit_",
        }))
    return events


def queue_status_changed(session, feedback: Feedback, old_status: str, voters: Optional[list] = None) -> List[OutboundEvent]:
    """
    Submitter + opted-in voters get an email; voter emails carry an
    unsubscribe link keyed by the vote's permission_key.
    """
    project = feedback.project
    events = []
    new_status = feedback.status
    emoji = STATUS_EMOJI.get(new_status, "📋")
    subject = f"[{project.name}] {emoji} {feedback.title} - {format_status(new_status)}"
    base_context = {
        "project_name": project.name,
        "feedback_title": feedback.title,
        "old_status": format_status(old_status),
        "new_status": format_status(new_status),
        "status_emoji": emoji,
        "status_message": STATUS_MESSAGES.get(new_status, "The status of your feedback has been updated."),
        "unsubscribe_url": None,
    }

    recipients = {}
    if feedback.user_email:
        recipients[feedback.user_email.lower()] = None
    for vote in voters or []:
        email = (vote.email or "").lower()
        if email and email not in recipients and vote.permission_key:
            recipients[email] = absolute_url(f"api/v1/votes/unsubscribe?key={vote.permission_key}")

    for email, unsubscribe_url in recipients.items():
        context = dict(base_context, unsubscribe_url=unsubscribe_url)
        events.append(_event(session, project, EVENT_STATUS_CHANGED, CHANNEL_EMAIL, {
            "to": email, "subject": subject, "template": "status_change", "context": context,
        }))

    if project.slack_webhook_url and project.slack_notify_status_changes:
        events.append(_event(session, project, EVENT_STATUS_CHANGED, CHANNEL_SLACK, {
            "text": f"{emoji} *{feedback.title}* moved from {format_status(old_status)} to *{format_status(new_status)}* ({project.name})",
        }))

    if project.trello_enabled and project.trello_sync_status and feedback.trello_card_id:
        events.append(_event(session, project, EVENT_STATUS_CHANGED, CHANNEL_TRELLO, {
            "action": TRELLO_ADD_COMMENT,
            "feedback_id": str(feedback.id),
            "card_id": feedback.trello_card_id,
            "text": f"Status changed: {format_status(old_status)} → {format_status(new_status)}",
        }))
    return events


def build_card_description(feedback: Feedback, mrr: Optional[float] = None) -> str:
    lines = [
        f"## {format_status(feedback.category)}",
        "",
        feedback.description,
        "",
        "---",
        "",
        "**Source:** FeedbackKit",
        f"**Project:** {feedback.project.name}",
        f"**Status:** {format_status(feedback.status)}",
        f"**Votes:** {feedback.vote_count}",
    ]
    if mrr:
        lines.append(f"**MRR:** ${mrr:.2f}")
    if feedback.user_email:
        lines.append(f"**Submitted by:** {feedback.user_email}")
    lines += ["", "---", "*Synced from FeedbackKit*"]
    return "\n".join(lines)
