import secrets
import string
import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow
from .feedback import STATUS_PENDING, DEFAULT_ALLOWED_STATUSES

_API_KEY_ALPHABET = string.ascii_letters + string.digits

def generate_api_key() -> str:
    return "sf_" + "".join(secrets.choice(_API_KEY_ALPHABET) for _ in range(32))

def _default_allowed_statuses():
    return list(DEFAULT_ALLOWED_STATUSES)

class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    api_key = db.Column(db.String(64), nullable=False, unique=True, index=True, default=generate_api_key)

    owner_id = db.Column(db.Uuid, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner = db.relationship("User", lazy="joined")

    # Archived projects keep serving reads but reject writes
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    allowed_statuses = db.Column(db.JSON, nullable=False, default=_default_allowed_statuses)

    # Slack
    slack_webhook_url = db.Column(db.String(512), nullable=True)
    slack_notify_new_feedback = db.Column(db.Boolean, nullable=False, default=True)
    slack_notify_new_comments = db.Column(db.Boolean, nullable=False, default=True)
    slack_notify_status_changes = db.Column(db.Boolean, nullable=False, default=True)

    # Trello
    trello_token = db.Column(db.String(255), nullable=True)
    trello_board_id = db.Column(db.String(64), nullable=True)
    trello_list_id = db.Column(db.String(64), nullable=True)
    trello_sync_status = db.Column(db.Boolean, nullable=False, default=False)
    trello_sync_comments = db.Column(db.Boolean, nullable=False, default=False)
    trello_is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def allows_status(self, status: str) -> bool:
        return status == STATUS_PENDING or status in (self.allowed_statuses or [])

    @property
    def trello_enabled(self) -> bool:
        return bool(self.trello_is_active and self.trello_token)

    def to_dict(self, *, feedback_count: int | None = None, member_count: int | None = None) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "api_key": self.api_key,
            "owner_id": str(self.owner_id),
            "owner_email": self.owner.email if self.owner else None,
            "is_archived": self.is_archived,
            "archived_at": isoformat(self.archived_at),
            "allowed_statuses": list(self.allowed_statuses or []),
            "slack_webhook_url": self.slack_webhook_url,
            "slack_notify_new_feedback": self.slack_notify_new_feedback,
            "slack_notify_new_comments": self.slack_notify_new_comments,
            "slack_notify_status_changes": self.slack_notify_status_changes,
            "trello_board_id": self.trello_board_id,
            "trello_list_id": self.trello_list_id,
            "trello_sync_status": self.trello_sync_status,
            "trello_sync_comments": self.trello_sync_comments,
            "trello_is_active": self.trello_is_active,
            "has_trello_token": bool(self.trello_token),
            "feedback_count": feedback_count,
            "member_count": member_count,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} archived={self.is_archived}>"
