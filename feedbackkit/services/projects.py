"""
Project administration. Callers resolve and authorize the project first
(`policy.role_required` / `policy.load_project`); these functions only
validate input and write.
"""
from typing import List, Optional

from sqlalchemy import delete, func, select

from feedbackkit.errors import Conflict, InvalidRequest, NotFound
from feedbackkit.models import Feedback, OutboundEvent, Project, ProjectMember, SDKUser, User, generate_api_key
from feedbackkit.models.feedback import STATUS_CHOICES, STATUS_PENDING
from feedbackkit.models.project_member import MEMBER_ROLES, ROLE_MEMBER
from feedbackkit.utils.helpers import parse_bool, parse_uuid, utcnow
from feedbackkit.utils.validators import clean_line, clean_str, is_valid_slack_webhook, SLACK_WEBHOOK_PREFIX
from .feedback import remove_feedback
from .policy import project_role
from .repository import transaction

MAX_NAME_LENGTH = 255


def project_payload(session, project: Project, role: Optional[str] = None) -> dict:
    feedback_count = session.execute(
        select(func.count(Feedback.id)).where(Feedback.project_id == project.id)
    ).scalar_one()
    member_count = session.execute(
        select(func.count(ProjectMember.id)).where(ProjectMember.project_id == project.id)
    ).scalar_one()
    data = project.to_dict(feedback_count=feedback_count, member_count=member_count)
    if role is not None:
        data["role"] = role
    return data


def create_project(session, owner: User, name: Optional[str], description: Optional[str] = None) -> Project:
    name = clean_line(name, max_len=MAX_NAME_LENGTH)
    if not name:
        raise InvalidRequest("Project name is required")
    with transaction(session):
        project = Project(
            name=name,
            description=clean_str(description, max_len=2000),
            owner_id=owner.id,
            api_key=generate_api_key(),
        )
        session.add(project)
    return project


def accessible_projects(session, user: User) -> List[Project]:
    """Projects the user owns or belongs to, newest first."""
    owned = session.execute(select(Project).where(Project.owner_id == user.id)).unique().scalars().all()
    member_of = session.execute(
        select(Project)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user.id)
    ).unique().scalars().all()

    seen, projects = set(), []
    for p in list(owned) + list(member_of):
        if p.id not in seen:
            seen.add(p.id)
            projects.append(p)
    projects.sort(key=lambda p: p.created_at, reverse=True)
    return projects


def list_projects(session, user: User) -> List[dict]:
    projects = accessible_projects(session, user)
    return [project_payload(session, p, role=project_role(session, p, user)) for p in projects]


def update_project(session, project: Project, name: Optional[str] = None, description: Optional[str] = None) -> Project:
    if name is not None:
        name = clean_line(name, max_len=MAX_NAME_LENGTH)
        if not name:
            raise InvalidRequest("Project name cannot be empty")
    with transaction(session):
        if name is not None:
            project.name = name
        if description is not None:
            project.description = clean_str(description, max_len=2000)
    return project


def delete_project(session, project: Project) -> None:
    with transaction(session):
        # live items take their merged lineage with them
        for fb in session.execute(
            select(Feedback).where(Feedback.project_id == project.id, Feedback.merged_into_id.is_(None))
        ).unique().scalars().all():
            remove_feedback(session, fb)
        for model in (ProjectMember, SDKUser, OutboundEvent):
            session.execute(delete(model).where(model.project_id == project.id))
        session.delete(project)


def archive_project(session, project: Project) -> Project:
    if project.is_archived:
        raise InvalidRequest("Project is already archived")
    with transaction(session):
        project.is_archived = True
        project.archived_at = utcnow()
    return project


def unarchive_project(session, project: Project) -> Project:
    if not project.is_archived:
        raise InvalidRequest("Project is not archived")
    with transaction(session):
        project.is_archived = False
        project.archived_at = None
    return project


def regenerate_api_key(session, project: Project) -> Project:
    with transaction(session):
        project.api_key = generate_api_key()
    return project


# ---- members ----

def list_members(session, project: Project) -> List[ProjectMember]:
    return list(session.execute(
        select(ProjectMember).where(ProjectMember.project_id == project.id).order_by(ProjectMember.created_at)
    ).unique().scalars().all())


def _role(raw: Optional[str]) -> str:
    role = (raw or ROLE_MEMBER).strip().lower()
    if role not in MEMBER_ROLES:
        raise InvalidRequest("Invalid role", allowed=list(MEMBER_ROLES))
    return role


def add_member(session, project: Project, email: Optional[str], role: Optional[str] = None) -> ProjectMember:
    email = (clean_str(email, max_len=320) or "").lower()
    if not email:
        raise InvalidRequest("Email is required")
    role = _role(role)
    user = session.execute(select(User).where(func.lower(User.email) == email)).scalar_one_or_none()
    if user is None:
        raise NotFound("No user with that email")
    if user.id == project.owner_id:
        raise Conflict("User is the owner of this project")
    existing = session.execute(
        select(ProjectMember).where(ProjectMember.project_id == project.id, ProjectMember.user_id == user.id)
    ).scalar_one_or_none()
    if existing is not None:
        raise Conflict("User is already a member of this project")

    with transaction(session):
        member = ProjectMember(project_id=project.id, user_id=user.id, role=role)
        session.add(member)
    return member


def _member(session, project: Project, member_id) -> ProjectMember:
    mid = parse_uuid(member_id)
    member = session.get(ProjectMember, mid) if mid else None
    if member is None or member.project_id != project.id:
        raise NotFound("Member not found")
    return member


def update_member_role(session, project: Project, member_id, role: Optional[str]) -> ProjectMember:
    member = _member(session, project, member_id)
    role = _role(role)
    with transaction(session):
        member.role = role
    return member


def remove_member(session, project: Project, member_id) -> None:
    member = _member(session, project, member_id)
    with transaction(session):
        session.delete(member)


# ---- settings ----

def update_allowed_statuses(session, project: Project, statuses) -> Project:
    if not isinstance(statuses, list) or not all(isinstance(s, str) for s in statuses):
        raise InvalidRequest("allowed_statuses must be a list of strings")
    for status in statuses:
        if status not in STATUS_CHOICES:
            raise InvalidRequest(
                f"Invalid status: {status}. Valid statuses are: {', '.join(STATUS_CHOICES)}",
            )
    if STATUS_PENDING not in statuses:
        raise InvalidRequest("The 'pending' status must always be allowed")

    ordered = [s for s in STATUS_CHOICES if s in statuses]
    with transaction(session):
        project.allowed_statuses = ordered
    return project


def update_slack_settings(session, project: Project, data: dict) -> Project:
    url = data.get("slack_webhook_url")
    if url is not None:
        url = (url or "").strip()
        if url and not is_valid_slack_webhook(url):
            raise InvalidRequest(f"Invalid Slack webhook URL. It must start with {SLACK_WEBHOOK_PREFIX}")

    with transaction(session):
        if url is not None:
            project.slack_webhook_url = url or None
        for flag in ("slack_notify_new_feedback", "slack_notify_new_comments", "slack_notify_status_changes"):
            if flag in data:
                setattr(project, flag, parse_bool(data[flag]))
    return project


def update_trello_settings(session, project: Project, data: dict) -> Project:
    with transaction(session):
        if "trello_token" in data:
            project.trello_token = clean_str(data.get("trello_token")) or None
        if "trello_board_id" in data:
            project.trello_board_id = clean_str(data.get("trello_board_id"), max_len=64)
        if "trello_list_id" in data:
            project.trello_list_id = clean_str(data.get("trello_list_id"), max_len=64)
        for flag in ("trello_sync_status", "trello_sync_comments", "trello_is_active"):
            if flag in data:
                setattr(project, flag, parse_bool(data[flag]))
    return project
