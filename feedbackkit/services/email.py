from typing import Optional, Dict, Any
from urllib.parse import urljoin
from datetime import timedelta
import logging
import time

from flask import current_app, render_template
from flask_mail import Message
from sqlalchemy import select

from feedbackkit.extensions import db, mail
from feedbackkit.models import EmailLog
from feedbackkit.observability import log_event
from feedbackkit.utils.helpers import utcnow

# suppression lookback window
SUPPRESSION_WINDOW_DAYS = 90
SUPPRESSING_STATUSES = ("bounced", "complaint")

OUTCOME_SENT = "sent"
OUTCOME_SUPPRESSED = "suppressed"
OUTCOME_FAILED = "failed"


def is_suppressed(to_email: str) -> bool:
    """
    Return True if the address should be suppressed due to a recent bounce/complaint.
    """
    cutoff = utcnow() - timedelta(days=SUPPRESSION_WINDOW_DAYS)
    q = select(EmailLog.id).where(
        EmailLog.to_email == to_email.lower(),
        EmailLog.created_at >= cutoff,
        EmailLog.status.in_(SUPPRESSING_STATUSES),
    )
    # Using EXISTS for efficiency
    return db.session.execute(select(q.exists())).scalar()


def absolute_url(path: str) -> str:
    base = current_app.config["APP_BASE_URL"].rstrip("/") + "/"
    path = path.lstrip("/")
    return urljoin(base, path)


def send_email(to_email: str, subject: str, template: str, context: Optional[Dict[str, Any]] = None) -> str:
    """
    template: basename under templates/email/ without extension (e.g., 'status_change')
    Renders both HTML and plaintext. Returns the outcome: sent | suppressed | failed.
    """
    context = context or {}
    to_email = to_email.lower()

    # Do-not-send suppression gate (derived from recent EmailLog events)
    if is_suppressed(to_email):
        db.session.add(EmailLog(
            to_email=to_email,
            template=template,
            subject=subject,
            status="failed",
            meta={"reason": "suppressed"},
        ))
        db.session.commit()
        log_event(current_app.logger, "mail_send", template=template, to=to_email, outcome=OUTCOME_SUPPRESSED)
        return OUTCOME_SUPPRESSED

    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{template}.txt", **context)
    msg.html = render_template(f"email/{template}.html", **context)

    # Persist an initial log
    elog = EmailLog(to_email=to_email, template=template, subject=subject, status="queued", meta={})
    db.session.add(elog)
    db.session.commit()

    start = time.perf_counter()
    try:
        mail.send(msg)  # Flask-Mail returns None; provider id capture varies by backend
    except Exception as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        elog.status = "failed"
        elog.meta = {"error": str(ex)}
        db.session.commit()
        log_event(
            current_app.logger, "mail_send", logging.WARNING,
            template=template, to=to_email, subject=subject,
            outcome="smtp_error", latency_ms=latency_ms, smtp_error=str(ex),
        )
        return OUTCOME_FAILED

    latency_ms = int((time.perf_counter() - start) * 1000)
    elog.status = "sent"
    db.session.commit()
    log_event(
        current_app.logger, "mail_send",
        template=template, to=to_email, subject=subject,
        outcome=OUTCOME_SENT, latency_ms=latency_ms,
    )
    return OUTCOME_SENT
