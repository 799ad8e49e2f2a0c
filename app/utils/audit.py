import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")


def _email_hash(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    h = hashlib.sha256(email.lower().encode()).hexdigest()
    return h[:12]


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value") and not isinstance(value, (str, int, float, bool)):
        return value.value  # enums
    return value if isinstance(value, (str, int, float, bool, type(None), list, dict)) else str(value)


def audit(event: str, *, email: Optional[str] = None, user_id: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    """Emit a structured audit record as a single JSON line and return it.

    Email is hashed to limit PII exposure. UUIDs, enums and datetimes in
    ``fields`` are flattened to strings.
    """
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    if email:
        payload["email_hash"] = _email_hash(email)
    if user_id:
        payload["user_id"] = str(user_id)
    for key, value in fields.items():
        payload[key] = _jsonable(value)
    _logger.info(json.dumps(payload, ensure_ascii=False))
    return payload


def admin_event(action: str, *, actor: str, application_id: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    """Audit record for operator overrides: {action, actor, application_id, timestamp}."""
    return audit(
        "ADMIN_OVERRIDE",
        action=action,
        actor=actor,
        application_id=str(application_id) if application_id else None,
        timestamp=datetime.now(timezone.utc),
        **fields,
    )
