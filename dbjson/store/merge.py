"""
Deterministic merge of the local and remote replica trees.

Policy:
    - object + object: merged key by key, recursively
    - list + list: concatenated, exact duplicates collapsed; lists made of
      attribute entries are re-sorted newest first
    - anything else (scalar collision, or mismatched kinds): local wins
    - a side that is absent contributes nothing

The result depends only on the contents of the two trees, not on the
order in which they are scanned. Equal timestamps are ordered by the
canonical JSON encoding of the entry so sorting is total.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from ..replica import MISSING


def is_entry(value: Any) -> bool:
    """True for an attribute entry: an object carrying an int timestamp."""
    return (
        isinstance(value, dict)
        and isinstance(value.get("timestamp"), int)
        and not isinstance(value.get("timestamp"), bool)
    )


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def sort_history(entries: List[Any]) -> List[Any]:
    """Sort attribute entries by timestamp, newest first."""
    return sorted(entries, key=lambda e: (-e["timestamp"], _canonical(e)))


def _merge_lists(local: List[Any], remote: List[Any]) -> List[Any]:
    seen = set()
    merged = []
    for item in list(local) + list(remote):
        key = _canonical(item)
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    if merged and all(is_entry(item) for item in merged):
        return sort_history(merged)
    return merged


def merge_trees(local: Any, remote: Any) -> Any:
    """Merge a local subtree with the matching remote subtree.

    Args:
        local: Subtree from the local replica, or MISSING
        remote: Subtree from the remote replica, or MISSING

    Returns:
        Merged subtree, or MISSING if both sides are absent
    """
    if local is MISSING:
        return _normalize(remote)
    if remote is MISSING:
        return _normalize(local)

    if isinstance(local, dict) and isinstance(remote, dict):
        merged: Dict[str, Any] = {}
        for key in local:
            merged[key] = merge_trees(local[key], remote.get(key, MISSING))
        for key in remote:
            if key not in local:
                merged[key] = _normalize(remote[key])
        return merged

    if isinstance(local, list) and isinstance(remote, list):
        return _merge_lists(local, remote)

    return _normalize(local)


def _normalize(value: Any) -> Any:
    """Apply the same list ordering to a single-sided subtree."""
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return _merge_lists(value, [])
    return value
