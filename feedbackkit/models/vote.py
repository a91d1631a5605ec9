import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import utcnow

class Vote(db.Model):
    __tablename__ = "votes"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    feedback_id = db.Column(db.Uuid, db.ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False, index=True)
    feedback = db.relationship("Feedback", back_populates="votes")
    user_id = db.Column(db.String(255), nullable=False, index=True)

    # Status-change notification opt-in; permission_key backs the unsubscribe link
    email = db.Column(db.String(320), nullable=True)
    notify_status_change = db.Column(db.Boolean, nullable=False, default=False)
    permission_key = db.Column(db.Uuid, nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("feedback_id", "user_id", name="uq_votes_feedback_user"),
    )

    def __repr__(self) -> str:
        return f"<Vote feedback={self.feedback_id} user={self.user_id!r}>"
