"""
In-memory replica implementation for testing.

This module provides a replica backend that keeps its tree in memory for:
- Unit tests
- Local development without touching the filesystem
- Seeding a "remote" mirror in tests

Invariants:
    - All data is lost on process exit
    - Same copy-on-write semantics as the file backend

How to change safely:
    - Keep interface compatible with the Replica protocol
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional

from .base import DocumentReplica

logger = logging.getLogger(__name__)


class InMemoryReplica(DocumentReplica):
    """Replica whose durable storage is the process itself.

    Attributes:
        commits: Number of successful commits, useful for asserting that
            a no-op call did not rewrite the tree

    Example:
        >>> remote = InMemoryReplica("remote", tree={"database": {"songs": {}}})
        >>> remote.get(("database",))
        {'songs': {}}
    """

    def __init__(
        self,
        name: str = "memory",
        root_key: str = "database",
        tree: Optional[Dict[str, Any]] = None,
    ) -> None:
        if tree is not None:
            tree = copy.deepcopy(tree)
            tree.setdefault(root_key, {})
        super().__init__(name=name, root_key=root_key, tree=tree)
        self.commits = 0

    def _commit(self, tree: Dict[str, Any]) -> None:
        self.commits += 1

    def dump(self) -> Dict[str, Any]:
        """Return a copy of the whole tree."""
        with self._lock:
            return copy.deepcopy(self._tree)
