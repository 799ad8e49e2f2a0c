import re
import secrets
import unicodedata

DISPLAY_NAME_MAX_LENGTH = 50

# No 0/O or 1/I/L so codes survive being read aloud or retyped
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

_WHITESPACE = re.compile(r"\s+")


def sanitize_display_name(value: str) -> str:
    """Strip control/format characters, collapse whitespace and truncate."""
    if not value:
        return ""
    cleaned = "".join(ch for ch in value if unicodedata.category(ch)[0] != "C")
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:DISPLAY_NAME_MAX_LENGTH].strip()


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def normalize_code(value: str) -> str:
    """Codes are matched case-insensitively and without surrounding spaces."""
    return (value or "").strip().upper()


def generate_code(prefix: str = "", length: int = 8) -> str:
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix}-{body}" if prefix else body
