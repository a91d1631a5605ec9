import uuid
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import func
from feedbackkit.extensions import db, login_manager
from feedbackkit.utils.helpers import utcnow

class User(db.Model, UserMixin):
    """Admin-app account (project owners and members)."""
    __tablename__ = "users"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), nullable=False)  # case-insensitive unique via index
    name = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    notify_new_feedback = db.Column(db.Boolean, nullable=False, default=True)
    notify_new_comments = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.Index("ix_users_lower_email", func.lower(email), unique=True),
    )

    # helpers
    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "notify_new_feedback": self.notify_new_feedback,
            "notify_new_comments": self.notify_new_comments,
        }

@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, uuid.UUID(user_id))
    except (TypeError, ValueError):
        return None

@login_manager.request_loader
def load_user_from_request(request):
    """Admin API auth: `Authorization: Bearer <token>` issued by /auth/login."""
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    from feedbackkit.services import tokens
    user_id = tokens.verify_auth_token(token.strip())
    if not user_id:
        return None
    user = load_user(user_id)
    if user is None or not user.is_active:
        return None
    return user
