from typing import List, Optional

from sqlalchemy import func, select

from feedbackkit.errors import InvalidRequest
from feedbackkit.models import Project, SDKUser
from feedbackkit.utils.helpers import utcnow
from feedbackkit.utils.validators import clean_str
from .repository import transaction


def _mrr(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRequest("mrr must be a number")
    try:
        mrr = float(value)
    except (TypeError, ValueError):
        raise InvalidRequest("mrr must be a number")
    if mrr < 0:
        raise InvalidRequest("mrr cannot be negative")
    return mrr


def register_sdk_user(session, project: Project, user_id: Optional[str], mrr=None) -> SDKUser:
    """Upsert the SDK user for this project and refresh last_seen_at."""
    user_id = clean_str(user_id)
    if not user_id:
        raise InvalidRequest("user_id is required")
    mrr = _mrr(mrr)

    with transaction(session):
        sdk_user = session.execute(
            select(SDKUser).where(SDKUser.project_id == project.id, SDKUser.user_id == user_id)
        ).scalar_one_or_none()
        if sdk_user is None:
            sdk_user = SDKUser(project_id=project.id, user_id=user_id, mrr=mrr)
            session.add(sdk_user)
        else:
            if mrr is not None:
                sdk_user.mrr = mrr
            sdk_user.last_seen_at = utcnow()
    return sdk_user


def list_sdk_users(session, project: Project) -> List[SDKUser]:
    return list(session.execute(
        select(SDKUser).where(SDKUser.project_id == project.id).order_by(SDKUser.last_seen_at.desc())
    ).scalars().all())


def sdk_user_stats(session, project: Project) -> dict:
    total, paying, mrr_sum = session.execute(
        select(
            func.count(SDKUser.id),
            func.count(SDKUser.mrr).filter(SDKUser.mrr > 0),
            func.coalesce(func.sum(SDKUser.mrr), 0.0),
        ).where(SDKUser.project_id == project.id)
    ).one()
    return {
        "total_users": total,
        "paying_users": paying,
        "total_mrr": float(mrr_sum or 0),
        "average_mrr": float(mrr_sum) / paying if paying else 0.0,
    }
