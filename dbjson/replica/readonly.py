"""
Read-only replica wrapper.

The remote mirror is written only by an external sync process. Wrapping
it in ReadOnlyReplica makes any attempt by the store to mutate it fail
loudly instead of silently diverging from the synced state.
"""

from __future__ import annotations

import logging
from typing import Any, NoReturn, Sequence

from .base import Replica, ReplicaReadOnlyError

logger = logging.getLogger(__name__)


class ReadOnlyReplica:
    """Delegates reads to an inner replica and rejects every mutation."""

    def __init__(self, inner: Replica) -> None:
        self.inner = inner

    @property
    def name(self) -> str:
        return self.inner.name

    def get(self, path: Sequence[str]) -> Any:
        return self.inner.get(path)

    def refresh(self) -> bool:
        return self.inner.refresh()

    def _reject(self, op: str, path: Sequence[str]) -> NoReturn:
        logger.error(f"Rejected {op} on read-only replica {self.name}: {'.'.join(path)}")
        raise ReplicaReadOnlyError(f"Replica '{self.name}' is read-only ({op} {'.'.join(path)})")

    def set(self, path: Sequence[str], value: Any) -> None:
        self._reject("set", path)

    def append(self, path: Sequence[str], entry: Any) -> int:
        self._reject("append", path)

    def unset(self, path: Sequence[str]) -> bool:
        self._reject("unset", path)
