"""
Store module for dbjson - versioned attributes and merged reads.

This module handles:
- Strictly increasing timestamps for new entries
- Deterministic merging of local and remote trees
- History windows over timestamp-sorted entries
- Record id allocation and table/record views

Invariants:
    - Entries are append-only
    - Only the local replica is written
"""

from .clock import TimestampClock
from .history import ALL, parse_window, select_window
from .merge import is_entry, merge_trees, sort_history
from .versioned_store import DEFAULT_USERNAME, VersionedStore

__all__ = [
    "ALL",
    "DEFAULT_USERNAME",
    "TimestampClock",
    "VersionedStore",
    "is_entry",
    "merge_trees",
    "parse_window",
    "select_window",
    "sort_history",
]
