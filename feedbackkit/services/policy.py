from functools import wraps
from typing import Iterable, Optional

from flask import g, request
from flask_login import current_user
from sqlalchemy import select

from feedbackkit.errors import Forbidden, NotFound, Unauthorized
from feedbackkit.extensions import db
from feedbackkit.models import Project, ProjectMember, ROLE_ADMIN, ROLE_MEMBER, ROLE_OWNER
from feedbackkit.utils.helpers import parse_uuid

MANAGE_ROLES = (ROLE_OWNER, ROLE_ADMIN)


def project_role(session, project: Project, user) -> Optional[str]:
    """owner | admin | member for this project, or None when the user has no access."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    if project.owner_id == user.id:
        return ROLE_OWNER
    m = session.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == user.id,
        )
    ).scalar_one_or_none()
    return m.role if m else None


def require_role(session, project: Project, user, roles: Iterable[str]) -> str:
    role = project_role(session, project, user)
    if role is None:
        raise NotFound("Project not found")  # anti-enumeration
    if role not in tuple(roles):
        raise Forbidden("Insufficient role for this project", role=role)
    return role


def load_project(session, project_id, user, roles: Optional[Iterable[str]] = None) -> Project:
    """Fetch a project by (string) id and check the caller's role in one step."""
    pid = parse_uuid(project_id)
    project = session.get(Project, pid) if pid else None
    if project is None:
        raise NotFound("Project not found")
    if roles is None:
        require_role(session, project, user, (ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER))
    else:
        require_role(session, project, user, roles)
    return project


def login_required(fn):
    """JSON-only variant of flask_login.login_required for the admin API."""
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not current_user.is_authenticated:
            raise Unauthorized("Authentication required")
        return fn(*args, **kwargs)
    return _wrap


def role_required(*roles):
    """
    Route guard for `/projects/<project_id>/...` endpoints: resolves the project
    into `g.project` and enforces the caller's role.
    """
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not current_user.is_authenticated:
                raise Unauthorized("Authentication required")
            g.project = load_project(db.session, kwargs.get("project_id"), current_user, roles or None)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def sdk_project(require_active: bool = False):
    """
    SDK auth: `X-API-Key` identifies the project. Sets `g.project`.
    With require_active, archived projects are refused up front.
    """
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            api_key = (request.headers.get("X-API-Key") or "").strip()
            if not api_key:
                raise Unauthorized("Missing API key")
            project = db.session.execute(
                select(Project).where(Project.api_key == api_key)
            ).unique().scalar_one_or_none()
            if project is None:
                raise Unauthorized("Invalid API key")
            if require_active and project.is_archived:
                raise Forbidden("Project is archived")
            g.project = project
            return fn(*args, **kwargs)
        return _wrap
    return deco
