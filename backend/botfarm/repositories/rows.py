"""
Row helpers shared by the repositories.

asyncpg returns JSONB columns as text unless a codec is registered, and
reports affected rows only in the command status string ("UPDATE 3").
"""
import json
from typing import Any, Optional


def dump_json(value: Any) -> Optional[str]:
    """Serialize a payload for a JSONB parameter (None stays NULL)."""
    if value is None:
        return None
    return json.dumps(value, default=str)


def load_json(value: Any, default: Any = None) -> Any:
    """Decode a JSONB column that may arrive as text or already decoded."""
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def affected_rows(status: Optional[str]) -> int:
    """Extract the row count from a command status like 'UPDATE 1'."""
    if not status:
        return 0
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0
