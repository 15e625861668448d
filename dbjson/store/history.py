"""
History windows.

A window decides how many of an attribute's entries a query returns:

    'all' or 0  -> every entry, newest first (list)
    1           -> the newest entry itself (not wrapped in a list)
    N > 1       -> the N newest entries (list); fewer than N is an error
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from ..errors import InsufficientHistoryError, InvalidRequestError
from .merge import sort_history

ALL = "all"

Window = Union[int, str]


def parse_window(value: Any) -> Window:
    """Validate a numEntries value.

    Accepts 'all', non-negative ints, and digit strings (hosts often send
    numbers as text).

    Raises:
        InvalidRequestError: For any other value
    """
    if value is None:
        return 1
    if isinstance(value, str):
        if value.lower() == ALL:
            return ALL
        if value.isdigit():
            value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidRequestError(f"Invalid numEntries {value!r}: expected 'all' or a non-negative integer")
    return value


def select_window(entries: List[dict], window: Any = 1, column: Optional[str] = None) -> Any:
    """Apply a history window to matching entries.

    Args:
        entries: Attribute entries in any order
        window: numEntries value
        column: Column name, used in error messages

    Returns:
        A single entry for window 1, otherwise a list newest first

    Raises:
        InsufficientHistoryError: If fewer than N entries exist for N > 1
    """
    window = parse_window(window)
    ordered = sort_history(entries)

    if window == ALL or window == 0:
        return ordered
    if window == 1:
        if not ordered:
            raise InsufficientHistoryError(1, 0, column)
        return ordered[0]
    if len(ordered) < window:
        raise InsufficientHistoryError(window, len(ordered), column)
    return ordered[:window]
