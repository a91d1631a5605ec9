import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow

class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    feedback_id = db.Column(db.Uuid, db.ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False, index=True)
    feedback = db.relationship("Feedback", back_populates="comments")
    user_id = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("ix_comments_feedback_created_at", "feedback_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "feedback_id": str(self.feedback_id),
            "user_id": self.user_id,
            "content": self.content,
            "is_admin": self.is_admin,
            "created_at": isoformat(self.created_at),
        }
