"""
Core Utility Functions.

Common utilities used across the application.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional


def safe_get(obj: Any, *keys: str, default: Any = None) -> Any:
    """
    Safely get nested dictionary values.

    Args:
        obj: Dictionary or object
        *keys: Keys to traverse
        default: Default value if key not found (or the value is None)

    Example:
        >>> safe_get({'_rankingInfo': {'userScore': 7}}, '_rankingInfo', 'userScore')
        7
        >>> safe_get({'_snippetResult': {}}, '_snippetResult', 'description', 'value', default='')
        ''
    """
    current = obj
    for key in keys:
        if isinstance(current, dict):
            current = current.get(key)
        elif hasattr(current, key):
            current = getattr(current, key)
        else:
            return default
        if current is None:
            return default
    return current


def chunk_list(items: List[Any], chunk_size: int) -> List[List[Any]]:
    """Split a list into chunks of specified size."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]


def to_epoch_millis(value: Any) -> Optional[int]:
    """
    Convert a timestamp to epoch milliseconds.

    Accepts datetimes (naive values are treated as UTC), ISO-8601 strings
    (including a trailing 'Z') and numbers, which are assumed to already
    be epoch milliseconds. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return None
