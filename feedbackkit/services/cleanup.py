import logging
import os
from datetime import timedelta
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from feedbackkit.observability import log_event
from feedbackkit.utils.helpers import utcnow
from .feedback import remove_feedback
from .repository import FeedbackRepository, transaction


def cleanup_stale_feedback(session, retention_days: Optional[int] = None, now=None) -> Tuple[int, int]:
    """
    Delete unmerged feedback older than the retention window (with votes and
    comments). Never runs in production. Returns (deleted, errors).
    """
    app_env = (current_app.config.get("APP_ENV") or os.getenv("APP_ENV", "development")).lower()
    if app_env == "production":
        current_app.logger.info("feedback cleanup disabled in production")
        return 0, 0

    if retention_days is None:
        retention_days = current_app.config.get("FEEDBACK_RETENTION_DAYS", 7)
    cutoff = (now or utcnow()) - timedelta(days=retention_days)

    deleted = errors = 0
    for feedback in FeedbackRepository(session).stale_unmerged(cutoff):
        feedback_id = feedback.id
        try:
            with transaction(session):
                remove_feedback(session, feedback)
            deleted += 1
        except SQLAlchemyError as exc:
            errors += 1
            log_event(current_app.logger, "feedback_cleanup_error", logging.ERROR, feedback_id=feedback_id, error=str(exc))

    log_event(
        current_app.logger, "feedback_cleanup",
        retention_days=retention_days, cutoff=cutoff, deleted=deleted, errors=errors,
    )
    return deleted, errors
