from datetime import datetime, timezone
from typing import Any, Optional


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a naive-UTC datetime the way the API exposes timestamps."""
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def parse_iso(value: Any) -> datetime:
    """
    Parse an ISO-8601 string into a naive UTC datetime.
    Offsets (including a trailing 'Z') are normalized to UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError("expected an ISO-8601 datetime string")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
