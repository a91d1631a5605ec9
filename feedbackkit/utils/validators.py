import re

# Simple, pragmatic patterns
_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/"

def clean_str(val: str | None, max_len: int = 255) -> str | None:
    """
    Trim and enforce max length. Returns None if empty after cleaning.
    """
    if val is None or not isinstance(val, str):
        return None
    s = val.strip()
    if not s:
        return None
    return s[:max_len]

def clean_line(val: str | None, max_len: int = 255) -> str | None:
    """Single-line variant: collapses inner whitespace as well."""
    if val is None or not isinstance(val, str):
        return None
    return clean_str(re.sub(r"\s+", " ", val), max_len=max_len)

def is_valid_email(val: str | None) -> bool:
    if not val:
        return True
    return bool(_EMAIL_RE.match(val))

def is_valid_slack_webhook(val: str | None) -> bool:
    if not val:
        return True
    return val.startswith(SLACK_WEBHOOK_PREFIX)
