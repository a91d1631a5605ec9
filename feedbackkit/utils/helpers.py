import uuid
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    """Return a UUID for str/UUID input; None if missing or malformed."""
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        return None


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
