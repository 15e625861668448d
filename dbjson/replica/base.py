"""
Base protocol and types for replica storage.

A replica is a persisted JSON-like tree addressed by path segments. This
module defines the Replica protocol, the MISSING marker returned for
absent paths, the replica error family, and DocumentReplica, the shared
copy-on-write implementation used by the concrete backends.

Invariants:
    - get() never raises for a missing path; it returns MISSING
    - Every mutation is durably committed before the call returns
    - A failed commit leaves both the in-memory tree and the stored
      document exactly as they were before the call

How to change safely:
    - Protocol changes require updating all implementations
    - Keep _commit() the single place where a new tree becomes visible
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)


class ReplicaError(Exception):
    """Base exception for replica operations."""
    pass


class ReplicaReadOnlyError(ReplicaError):
    """Mutation attempted on a read-only replica."""
    pass


class ReplicaPathError(ReplicaError):
    """Path cannot be applied to the current tree shape."""
    pass


class ReplicaCorruptError(ReplicaError):
    """Stored document is not a JSON object."""
    pass


class _Missing:
    """Marker for an absent path."""

    _instance = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"

    def __copy__(self) -> _Missing:
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> _Missing:
        return self


MISSING = _Missing()


@runtime_checkable
class Replica(Protocol):
    """Protocol for path-addressed persistent trees."""

    @property
    def name(self) -> str:
        """Human-readable replica name used in logs."""
        ...

    def get(self, path: Sequence[str]) -> Any:
        """Return a copy of the subtree at path, or MISSING."""
        ...

    def set(self, path: Sequence[str], value: Any) -> None:
        """Overwrite the subtree at path."""
        ...

    def append(self, path: Sequence[str], entry: Any) -> int:
        """Append entry to the list at path, creating it if absent.

        Returns:
            Length of the list after the append
        """
        ...

    def unset(self, path: Sequence[str]) -> bool:
        """Remove the subtree at path.

        Returns:
            True if something was removed, False if the path was absent
        """
        ...

    def refresh(self) -> bool:
        """Pick up changes made to the stored document by another process.

        Returns:
            True if the tree was reloaded
        """
        ...


class DocumentReplica:
    """Copy-on-write tree shared by the concrete replica backends.

    Mutations are applied to a deep copy of the current tree, handed to
    _commit() for durable storage, and only then swapped in. Subclasses
    implement _commit() and may override refresh().

    Thread safety:
        A single lock serializes read-modify-write cycles. The store is
        still expected to be driven by one caller at a time.
    """

    def __init__(self, name: str, root_key: str, tree: Optional[Dict[str, Any]] = None) -> None:
        self._name = name
        self.root_key = root_key
        self._tree: Dict[str, Any] = tree if tree is not None else {root_key: {}}
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._name

    def _commit(self, tree: Dict[str, Any]) -> None:
        """Durably store tree. Raises on failure."""
        raise NotImplementedError

    def refresh(self) -> bool:
        return False

    def get(self, path: Sequence[str]) -> Any:
        with self._lock:
            node = _walk(self._tree, path)
            if node is MISSING:
                return MISSING
            return copy.deepcopy(node)

    def set(self, path: Sequence[str], value: Any) -> None:
        _require_path(path)
        with self._lock:
            tree = copy.deepcopy(self._tree)
            parent = _walk_create(tree, path[:-1])
            parent[path[-1]] = copy.deepcopy(value)
            self._swap(tree)
        logger.debug(f"{self._name}: set {'.'.join(path)}")

    def append(self, path: Sequence[str], entry: Any) -> int:
        _require_path(path)
        with self._lock:
            tree = copy.deepcopy(self._tree)
            parent = _walk_create(tree, path[:-1])
            current = parent.get(path[-1], MISSING)
            if current is MISSING:
                current = []
                parent[path[-1]] = current
            elif not isinstance(current, list):
                raise ReplicaPathError(
                    f"Cannot append to '{'.'.join(path)}': holds {type(current).__name__}, not list"
                )
            current.append(copy.deepcopy(entry))
            length = len(current)
            self._swap(tree)
        logger.debug(f"{self._name}: append {'.'.join(path)} (len={length})")
        return length

    def unset(self, path: Sequence[str]) -> bool:
        _require_path(path)
        with self._lock:
            parent = _walk(self._tree, path[:-1])
            if not isinstance(parent, dict) or path[-1] not in parent:
                return False
            tree = copy.deepcopy(self._tree)
            del _walk(tree, path[:-1])[path[-1]]
            if path[0] not in tree:
                tree[path[0]] = {}
            self._swap(tree)
        logger.debug(f"{self._name}: unset {'.'.join(path)}")
        return True

    def _swap(self, tree: Dict[str, Any]) -> None:
        self._commit(tree)
        self._tree = tree


def _require_path(path: Sequence[str]) -> None:
    if not path:
        raise ReplicaPathError("Path must contain at least one segment")


def _walk(tree: Any, path: Sequence[str]) -> Any:
    node = tree
    for seg in path:
        if not isinstance(node, dict) or seg not in node:
            return MISSING
        node = node[seg]
    return node


def _walk_create(tree: Dict[str, Any], path: Sequence[str]) -> Dict[str, Any]:
    node = tree
    for i, seg in enumerate(path):
        nxt = node.get(seg, MISSING)
        if nxt is MISSING:
            nxt = {}
            node[seg] = nxt
        elif not isinstance(nxt, dict):
            raise ReplicaPathError(
                f"Cannot descend into '{'.'.join(path[: i + 1])}': holds {type(nxt).__name__}"
            )
        node = nxt
    return node


def create_replica(config: "StorageConfig", role: str) -> Replica:
    """Factory function to create a replica from configuration.

    Args:
        config: Storage configuration
        role: "local" or "remote"; remote replicas are wrapped read-only

    Returns:
        Replica implementation for the configured backend

    Raises:
        ValueError: If backend or role is not supported
    """
    from ..config import ReplicaBackend
    from .json_file import JsonFileReplica
    from .memory import InMemoryReplica
    from .readonly import ReadOnlyReplica

    if role not in ("local", "remote"):
        raise ValueError(f"Unsupported replica role: {role}")

    replica: Replica
    if config.backend == ReplicaBackend.FILE:
        if role == "local":
            replica = JsonFileReplica(
                config.local_path,
                root_key=config.root_key,
                fsync=config.fsync,
                indent=config.indent,
            )
        else:
            replica = JsonFileReplica(
                config.remote_path,
                root_key=config.root_key,
                create=False,
                watch=config.reload_remote,
            )
    elif config.backend == ReplicaBackend.MEMORY:
        replica = InMemoryReplica(name=role, root_key=config.root_key)
    else:
        raise ValueError(f"Unsupported replica backend: {config.backend}")

    if role == "remote":
        return ReadOnlyReplica(replica)
    return replica
