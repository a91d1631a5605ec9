import hmac
import hashlib
from flask import request, jsonify, abort, current_app
from . import bp
from feedbackkit.extensions import db, csrf
from feedbackkit.models import EmailLog
from feedbackkit.observability import log_event

def _valid_signature(raw_body: bytes, timestamp: str, sig: str) -> bool:
    secret = current_app.config.get("EMAIL_WEBHOOK_SECRET")
    if not secret:
        return False
    mac = hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(mac, sig)

@csrf.exempt
@bp.post("/email")
def email_events():
    # Generic HMAC: X-Timestamp, X-Signature
    timestamp = request.headers.get("X-Timestamp", "")
    signature = request.headers.get("X-Signature", "")
    raw = request.get_data() or b""

    if not _valid_signature(raw, timestamp, signature):
        abort(401)

    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        abort(400)
    event = (payload.get("event") or "").lower()           # e.g., "bounce" | "complaint" | "delivered"
    to_email = (payload.get("email") or "").strip().lower()
    provider_msg_id = payload.get("message_id")
    if not to_email:
        abort(400)

    status_map = {
        "bounce": "bounced",
        "complaint": "complaint",
        "delivered": "delivered",
    }
    status = status_map.get(event, "failed")

    log = EmailLog(
        to_email=to_email,
        template=payload.get("template") or "unknown",
        subject=payload.get("subject") or "",
        provider_msg_id=provider_msg_id,
        status=status,
        meta=payload,
    )
    db.session.add(log)
    db.session.commit()

    log_event(current_app.logger, "mail_webhook", to=to_email, status=status, provider_msg_id=provider_msg_id)

    return jsonify({"ok": True}), 200
