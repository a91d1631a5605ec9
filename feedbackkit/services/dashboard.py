"""
Read-only dashboard aggregates: feedback counts by status and category, SDK
users, comments and votes, per project and summed across a user's projects.
Merged items are counted like any other row.
"""
from collections import defaultdict
from typing import Dict, Iterable, List

from sqlalchemy import func, select

from feedbackkit.models import Comment, Feedback, Project, SDKUser, User
from feedbackkit.models.feedback import CATEGORY_CHOICES, STATUS_CHOICES
from .projects import accessible_projects


def _grouped(session, column, project_ids: List) -> Dict:
    """{project_id: {value: count}} for a feedback column."""
    out = defaultdict(dict)
    if not project_ids:
        return out
    rows = session.execute(
        select(Feedback.project_id, column, func.count(Feedback.id))
        .where(Feedback.project_id.in_(project_ids))
        .group_by(Feedback.project_id, column)
    ).all()
    for project_id, value, n in rows:
        out[project_id][value] = n
    return out


def _per_project(session, stmt) -> Dict:
    return {project_id: n or 0 for project_id, n in session.execute(stmt).all()}


def _zero_filled(counts: Dict, keys: Iterable[str]) -> Dict[str, int]:
    return {key: counts.get(key, 0) for key in keys}


def _stats(session, projects: List[Project]) -> List[dict]:
    ids = [p.id for p in projects]
    by_status = _grouped(session, Feedback.status, ids)
    by_category = _grouped(session, Feedback.category, ids)
    users = comments = votes = {}
    if ids:
        users = _per_project(session, select(SDKUser.project_id, func.count(SDKUser.id))
                             .where(SDKUser.project_id.in_(ids)).group_by(SDKUser.project_id))
        comments = _per_project(session, select(Feedback.project_id, func.count(Comment.id))
                                .join(Comment, Comment.feedback_id == Feedback.id)
                                .where(Feedback.project_id.in_(ids)).group_by(Feedback.project_id))
        votes = _per_project(session, select(Feedback.project_id, func.sum(Feedback.vote_count))
                             .where(Feedback.project_id.in_(ids)).group_by(Feedback.project_id))

    out = []
    for project in projects:
        status_counts = _zero_filled(by_status.get(project.id, {}), STATUS_CHOICES)
        out.append({
            "id": str(project.id),
            "name": project.name,
            "is_archived": project.is_archived,
            "feedback_count": sum(status_counts.values()),
            "feedback_by_status": status_counts,
            "feedback_by_category": _zero_filled(by_category.get(project.id, {}), CATEGORY_CHOICES),
            "user_count": users.get(project.id, 0),
            "comment_count": comments.get(project.id, 0),
            "vote_count": votes.get(project.id, 0),
        })
    return out


def project_stats(session, project: Project) -> dict:
    return _stats(session, [project])[0]


def home_summary(session, user: User) -> dict:
    """Totals across every project the user can see, busiest project first."""
    per_project = _stats(session, accessible_projects(session, user))
    per_project.sort(key=lambda s: s["feedback_count"], reverse=True)

    def _sum_maps(field, keys):
        return {key: sum(s[field][key] for s in per_project) for key in keys}

    return {
        "total_projects": len(per_project),
        "total_feedback": sum(s["feedback_count"] for s in per_project),
        "feedback_by_status": _sum_maps("feedback_by_status", STATUS_CHOICES),
        "feedback_by_category": _sum_maps("feedback_by_category", CATEGORY_CHOICES),
        "total_users": sum(s["user_count"] for s in per_project),
        "total_comments": sum(s["comment_count"] for s in per_project),
        "total_votes": sum(s["vote_count"] for s in per_project),
        "project_stats": per_project,
    }
