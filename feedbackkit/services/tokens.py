from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

def _serializer() -> URLSafeTimedSerializer:
    secret = current_app.config["SECRET_KEY"]
    salt = current_app.config.get("AUTH_TOKEN_SALT", "auth-token-v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)

def generate(kind: str, identity: str) -> str:
    """
    kind: token purpose, e.g. 'auth'
    identity: user id string
    """
    return _serializer().dumps({"k": kind, "i": identity})

def verify(kind: str, token: str, max_age_seconds: int) -> Optional[str]:
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or data.get("k") != kind:
        return None
    return data.get("i")

def generate_auth_token(user) -> str:
    return generate("auth", str(user.id))

def verify_auth_token(token: str) -> Optional[str]:
    return verify("auth", token, max_age_seconds=current_app.config.get("AUTH_TOKEN_MAX_AGE", 60 * 60 * 24 * 30))
