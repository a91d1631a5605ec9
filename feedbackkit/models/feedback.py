import uuid
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_IN_PROGRESS = "in_progress"
STATUS_TESTFLIGHT = "testflight"
STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"
STATUS_CHOICES = (
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_IN_PROGRESS,
    STATUS_TESTFLIGHT,
    STATUS_COMPLETED,
    STATUS_REJECTED,
)
# Enabled for new projects; testflight is opt-in
DEFAULT_ALLOWED_STATUSES = (
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_REJECTED,
)
# Voting closes once feedback reaches one of these
CLOSED_STATUSES = (STATUS_COMPLETED, STATUS_REJECTED)

CATEGORY_FEATURE_REQUEST = "feature_request"
CATEGORY_CHOICES = (CATEGORY_FEATURE_REQUEST, "bug_report", "improvement", "other")

class Feedback(db.Model):
    __tablename__ = "feedbacks"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    project_id = db.Column(db.Uuid, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    project = db.relationship("Project", lazy="joined")

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    category = db.Column(db.String(32), nullable=False, default=CATEGORY_FEATURE_REQUEST)

    # SDK user identity of the submitter (opaque string from the client)
    user_id = db.Column(db.String(255), nullable=False, index=True)
    user_email = db.Column(db.String(320), nullable=True)

    # Denormalized; equals the number of Vote rows after every vote/unvote/merge
    vote_count = db.Column(db.Integer, nullable=False, default=0)

    # Merge state: merged_into_id is set once and never cleared
    merged_into_id = db.Column(db.Uuid, db.ForeignKey("feedbacks.id"), nullable=True, index=True)
    merged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    merged_feedback_ids = db.Column(db.JSON, nullable=True)

    trello_card_id = db.Column(db.String(64), nullable=True)
    trello_card_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    votes = db.relationship("Vote", back_populates="feedback", cascade="all, delete-orphan")
    comments = db.relationship(
        "Comment",
        back_populates="feedback",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )

    __table_args__ = (
        db.Index("ix_feedbacks_project_vote_count", "project_id", "vote_count"),
    )

    @property
    def is_merged(self) -> bool:
        return self.merged_into_id is not None

    @property
    def has_merged_feedback(self) -> bool:
        return bool(self.merged_feedback_ids)

    def to_dict(self, *, has_voted: bool = False, comment_count: int = 0, total_mrr: float | None = None) -> dict:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "category": self.category,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "vote_count": self.vote_count,
            "has_voted": has_voted,
            "comment_count": comment_count,
            "total_mrr": total_mrr,
            "merged_into_id": str(self.merged_into_id) if self.merged_into_id else None,
            "merged_at": isoformat(self.merged_at),
            "merged_feedback_ids": list(self.merged_feedback_ids) if self.merged_feedback_ids else None,
            "trello_card_id": self.trello_card_id,
            "trello_card_url": self.trello_card_url,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Feedback id={self.id} title={self.title!r} votes={self.vote_count} merged_into={self.merged_into_id}>"
