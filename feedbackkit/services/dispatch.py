"""
Outbox delivery.

Rows written by `services.notifications` are delivered after the triggering
transaction commits: on a small thread pool in normal operation, inline when
OUTBOX_DISPATCH_ASYNC is off (tests). Every row succeeds or fails on its own;
`flask outbox retry` picks up whatever is still pending or failed.
"""
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Tuple

import httpx
from flask import current_app
from sqlalchemy import select

from feedbackkit.extensions import db
from feedbackkit.models import Feedback, OutboundEvent, Project
from feedbackkit.models.outbound_event import (
    CHANNEL_EMAIL,
    CHANNEL_SLACK,
    CHANNEL_TRELLO,
    OUTBOX_DELIVERED,
    OUTBOX_FAILED,
    OUTBOX_PENDING,
)
from feedbackkit.observability import log_event
from feedbackkit.utils.helpers import utcnow
from .email import OUTCOME_FAILED, send_email
from .notifications import TRELLO_ADD_COMMENT, TRELLO_CREATE_CARD

TRELLO_BASE_URL = "https://api.trello.com/1"
EXECUTOR_KEY = "feedbackkit.outbox_executor"


class DeliveryError(RuntimeError):
    """A channel could not deliver (misconfigured or provider refused)."""


def init_dispatch(app) -> None:
    """Attach the per-app delivery pool; threads start lazily on first submit."""
    app.extensions[EXECUTOR_KEY] = ThreadPoolExecutor(
        max_workers=app.config.get("OUTBOX_WORKERS", 4),
        thread_name_prefix="outbox",
    )


def dispatch_pending(event_ids: Iterable) -> None:
    """Hand committed outbox rows to the delivery pool (or deliver inline)."""
    ids = [e.id if isinstance(e, OutboundEvent) else e for e in event_ids]
    if not ids:
        return
    app = current_app._get_current_object()
    executor = app.extensions.get(EXECUTOR_KEY)
    if app.config.get("OUTBOX_DISPATCH_ASYNC", True) and executor is not None:
        executor.submit(_deliver_in_context, app, ids)
    else:
        deliver_events(ids)


def _deliver_in_context(app, ids) -> None:
    with app.app_context():
        try:
            deliver_events(ids)
        except Exception:
            app.logger.exception("outbox delivery batch crashed")


def deliver_events(ids: Iterable[uuid.UUID]) -> Tuple[int, int]:
    delivered = failed = 0
    for event_id in ids:
        ev = db.session.get(OutboundEvent, event_id)
        if ev is None or ev.status == OUTBOX_DELIVERED:
            continue
        if deliver_one(ev):
            delivered += 1
        else:
            failed += 1
    return delivered, failed


def deliver_one(ev: OutboundEvent) -> bool:
    handler = _HANDLERS[ev.channel]
    attempts = (ev.attempts or 0) + 1
    try:
        handler(ev)
    except Exception as exc:
        db.session.rollback()
        ev.attempts = attempts
        ev.status = OUTBOX_FAILED
        ev.last_error = str(exc)[:2000]
        db.session.commit()
        log_event(
            current_app.logger, "outbound_delivery", logging.WARNING,
            outbound_event_id=ev.id, channel=ev.channel, event_type=ev.event_type,
            outcome="failed", attempts=ev.attempts, error=str(exc),
        )
        return False

    ev.attempts = attempts
    ev.status = OUTBOX_DELIVERED
    ev.delivered_at = utcnow()
    ev.last_error = None
    db.session.commit()
    log_event(
        current_app.logger, "outbound_delivery",
        outbound_event_id=ev.id, channel=ev.channel, event_type=ev.event_type,
        outcome="delivered", attempts=ev.attempts,
    )
    return True


def retry_failed(limit: int = 100) -> Tuple[int, int]:
    """Redeliver pending/failed rows that still have attempts left."""
    max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)
    ids = db.session.execute(
        select(OutboundEvent.id)
        .where(
            OutboundEvent.status.in_((OUTBOX_PENDING, OUTBOX_FAILED)),
            OutboundEvent.attempts < max_attempts,
        )
        .order_by(OutboundEvent.created_at)
        .limit(limit)
    ).scalars().all()
    return deliver_events(ids)


# ---- channels ----

def _timeout() -> float:
    return float(current_app.config.get("INTEGRATION_HTTP_TIMEOUT", 10.0))


def _project(ev: OutboundEvent) -> Project:
    project = db.session.get(Project, ev.project_id) if ev.project_id else None
    if project is None:
        raise DeliveryError("project no longer exists")
    return project


def _deliver_email(ev: OutboundEvent) -> None:
    p = ev.payload or {}
    outcome = send_email(
        to_email=p["to"],
        subject=p["subject"],
        template=p["template"],
        context=p.get("context") or {},
    )
    if outcome == OUTCOME_FAILED:
        raise DeliveryError(f"mail to {p['to']} failed")


def _deliver_slack(ev: OutboundEvent) -> None:
    project = _project(ev)
    if not project.slack_webhook_url:
        raise DeliveryError("slack webhook not configured")
    response = httpx.post(project.slack_webhook_url, json={"text": ev.payload["text"]}, timeout=_timeout())
    response.raise_for_status()


def _deliver_trello(ev: OutboundEvent) -> None:
    project = _project(ev)
    api_key = current_app.config.get("TRELLO_API_KEY")
    if not api_key or not project.trello_enabled:
        raise DeliveryError("trello not configured")
    params = {"key": api_key, "token": project.trello_token}
    p = ev.payload or {}

    if p.get("action") == TRELLO_CREATE_CARD:
        if not project.trello_list_id:
            raise DeliveryError("trello list not configured")
        response = httpx.post(
            f"{TRELLO_BASE_URL}/cards",
            params=params,
            json={"idList": project.trello_list_id, "name": p["name"], "desc": p["desc"], "pos": "bottom"},
            timeout=_timeout(),
        )
        response.raise_for_status()
        card = response.json()
        feedback = db.session.get(Feedback, uuid.UUID(p["feedback_id"]))
        if feedback is not None:
            feedback.trello_card_id = card.get("id")
            feedback.trello_card_url = card.get("shortUrl") or card.get("url")
    elif p.get("action") == TRELLO_ADD_COMMENT:
        response = httpx.post(
            f"{TRELLO_BASE_URL}/cards/{p['card_id']}/actions/comments",
            params=params,
            json={"text": p["text"]},
            timeout=_timeout(),
        )
        response.raise_for_status()
    else:
        raise DeliveryError(f"unknown trello action: {p.get('action')!r}")


_HANDLERS = {
    CHANNEL_EMAIL: _deliver_email,
    CHANNEL_SLACK: _deliver_slack,
    CHANNEL_TRELLO: _deliver_trello,
}
