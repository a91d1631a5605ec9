import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow

class SDKUser(db.Model):
    """End user of a customer's app, as reported by the SDK (MRR tracking)."""
    __tablename__ = "sdk_users"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    project_id = db.Column(db.Uuid, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(255), nullable=False)
    mrr = db.Column(db.Float, nullable=True)
    first_seen_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_sdk_users_project_user"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "mrr": self.mrr,
            "first_seen_at": isoformat(self.first_seen_at),
            "last_seen_at": isoformat(self.last_seen_at),
        }
