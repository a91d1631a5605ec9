import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow

CHANNEL_EMAIL = "email"
CHANNEL_SLACK = "slack"
CHANNEL_TRELLO = "trello"
CHANNEL_CHOICES = (CHANNEL_EMAIL, CHANNEL_SLACK, CHANNEL_TRELLO)

OUTBOX_PENDING = "pending"
OUTBOX_DELIVERED = "delivered"
OUTBOX_FAILED = "failed"

class OutboundEvent(db.Model):
    """
    Outbox row: one side-channel delivery (email/Slack/Trello) for one event.
    Written in the same transaction as the change that caused it; delivered
    after commit and retried independently per row.
    """
    __tablename__ = "outbound_events"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    project_id = db.Column(db.Uuid, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    event_type = db.Column(db.String(40), nullable=False)   # feedback.created|feedback.status_changed|comment.created|...
    channel = db.Column(db.String(20), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(20), nullable=False, default=OUTBOX_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "channel IN ('email','slack','trello')",
            name="ck_outbound_events_channel_valid",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "event_type": self.event_type,
            "channel": self.channel,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "delivered_at": isoformat(self.delivered_at),
        }

    def __repr__(self) -> str:
        return f"<OutboundEvent id={self.id} {self.event_type}->{self.channel} status={self.status}>"
