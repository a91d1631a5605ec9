from flask import request, jsonify
from flask_login import current_user
from sqlalchemy import func
from feedbackkit.errors import Conflict, InvalidRequest, Unauthorized
from feedbackkit.extensions import db, limiter
from feedbackkit.models.user import User
from feedbackkit.services import tokens
from feedbackkit.services.policy import login_required
from feedbackkit.utils.helpers import parse_bool
from feedbackkit.utils.validators import clean_line, is_valid_email
from . import bp

MIN_PASSWORD_LENGTH = 8


def _login_email_scope():
    data_json = request.get_json(silent=True) or {}
    email = (data_json.get("email") or "").strip().lower() if isinstance(data_json, dict) else ""
    # Keep a stable scope even if email is blank
    return f"login-email:{email or 'missing'}"


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("JSON object body required")
    return data


def _find_user(email: str):
    return db.session.execute(
        db.select(User).where(func.lower(User.email) == func.lower(email))
    ).scalar_one_or_none()


def _token_response(user: User, status: int):
    return jsonify({"token": tokens.generate_auth_token(user), "user": user.to_dict()}), status


@bp.post("/signup")
@limiter.limit("5 per minute; 50 per day")
def signup():
    data = _payload()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = clean_line(data.get("name")) or email

    if not email or not is_valid_email(email):
        raise InvalidRequest("A valid email is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if _find_user(email):
        raise Conflict("An account with this email already exists")

    user = User(email=email, name=name, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return _token_response(user, 201)


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")              # per-IP (anon → IP via _rate_limit_key)
@limiter.limit("5 per minute; 20 per hour", key_func=_login_email_scope)  # per-account
def login():
    data = _payload()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        raise InvalidRequest("Email and password are required")

    user = _find_user(email)
    if not user or not user.check_password(password) or not user.is_active:
        raise Unauthorized("Invalid credentials")
    return _token_response(user, 200)


@bp.get("/me")
@login_required
def me():
    return jsonify(current_user.to_dict()), 200


@bp.patch("/me")
@login_required
def update_me():
    data = _payload()
    user = current_user._get_current_object()
    if "name" in data:
        name = clean_line(data.get("name"))
        if not name:
            raise InvalidRequest("Name cannot be empty")
        user.name = name
    for flag in ("notify_new_feedback", "notify_new_comments"):
        if flag in data:
            setattr(user, flag, parse_bool(data[flag]))
    db.session.commit()
    return jsonify(user.to_dict()), 200
