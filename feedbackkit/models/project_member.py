import uuid
from sqlalchemy import CheckConstraint, UniqueConstraint
from feedbackkit.extensions import db
from feedbackkit.utils.helpers import isoformat, utcnow

# Keep simple text+CHECK for evolvable roles (no DB enum migration pain).
# The owner is implicit via Project.owner_id and never stored here.
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
MEMBER_ROLES = (ROLE_ADMIN, ROLE_MEMBER)

class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)

    project_id = db.Column(
        db.Uuid,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Uuid,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user = db.relationship("User", lazy="joined")

    # default is member; admin must be explicit
    role = db.Column(db.String(20), nullable=False, default=ROLE_MEMBER)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        CheckConstraint(
            "role IN ('admin','member')",
            name="ck_project_members_role_valid",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "email": self.user.email if self.user else None,
            "name": self.user.name if self.user else None,
            "role": self.role,
            "created_at": isoformat(self.created_at),
        }
