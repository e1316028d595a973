import base64, binascii, json
from datetime import datetime
from typing import Any, Callable, Sequence
from app.core.errors import ValidationError

def encode_cursor(obj: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj, separators=(",",":"), default=str).encode()).decode()

def decode_cursor(token: str | None) -> dict | None:
    if not token: return None
    try:
        data = json.loads(base64.urlsafe_b64decode(token.encode()).decode())
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise ValidationError("Malformed cursor", field="cursor")
    if not isinstance(data, dict):
        raise ValidationError("Malformed cursor", field="cursor")
    return data

def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    if not limit:
        return default
    return max(1, min(limit, maximum))

def page(rows: Sequence[Any], limit: int, key: Callable[[Any], dict]) -> tuple[list[Any], str | None]:
    """Split a limit+1 fetch into one page plus the cursor for the next one."""
    items = list(rows[:limit])
    if len(rows) <= limit or not items:
        return items, None
    return items, encode_cursor(key(items[-1]))

def parse_cursor_date(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Malformed cursor", field="cursor")
