"""
JSON file replica.

Stores the whole replica tree as a single JSON document:

    {"database": {"songs": {"Petrichor": {"tags": [...]}}}}

Every mutation rewrites the document: the new tree is serialized to a
temporary file in the same directory, flushed and fsynced, then moved
over the old document with os.replace(). Readers of the file therefore
see either the previous document or the new one, never a partial write.

Invariants:
    - The in-memory tree only changes after the new document is in place
    - A document missing its root key is repaired on load
    - A document that is not a JSON object is rejected, never overwritten

How to change safely:
    - Keep the temp file in the target directory (os.replace must not
      cross filesystems)
    - Test failure paths with an unwritable directory
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .base import DocumentReplica, ReplicaCorruptError

logger = logging.getLogger(__name__)


class JsonFileReplica(DocumentReplica):
    """Replica persisted as one JSON document with autosave.

    Attributes:
        path: Location of the JSON document
        fsync: Whether to fsync the temp file before replacing
        indent: JSON indent for saved documents (0 = compact)

    Example:
        >>> local = JsonFileReplica("/tmp/localdb.json")
        >>> local.append(("database", "songs", "Petrichor", "tags"), {"value": "bass"})
        1
        >>> local.get(("database", "songs"))
        {'Petrichor': {'tags': [{'value': 'bass'}]}}
    """

    def __init__(
        self,
        path: Union[str, Path],
        root_key: str = "database",
        create: bool = True,
        watch: bool = False,
        fsync: bool = True,
        indent: int = 2,
    ) -> None:
        """Load or initialize the document.

        Args:
            path: JSON document location
            root_key: Top-level key of the tree
            create: Write an empty rooted document if none exists
            watch: Let refresh() reload the document when it changes on disk
            fsync: fsync before replacing the document
            indent: JSON indent for saved documents
        """
        self.path = Path(path)
        self.fsync = fsync
        self.indent = indent or None
        self.watch = watch
        self._stat: Optional[Tuple[int, int]] = None

        tree, needs_save = self._load(root_key)
        super().__init__(name=self.path.name, root_key=root_key, tree=tree)

        if needs_save and create:
            self._commit(tree)
            logger.info(f"Initialized replica document {self.path}")

    def _load(self, root_key: str) -> Tuple[Dict[str, Any], bool]:
        """Read the document from disk.

        Returns:
            Tuple of (tree, whether the document must be (re)written)
        """
        if not self.path.exists():
            self._stat = None
            return {root_key: {}}, True

        text = self.path.read_text(encoding="utf-8")
        self._stat = self._current_stat()
        if not text.strip():
            return {root_key: {}}, True

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ReplicaCorruptError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ReplicaCorruptError(f"{self.path} must hold a JSON object, got {type(data).__name__}")

        needs_save = False
        if not isinstance(data.get(root_key), dict):
            if root_key in data:
                raise ReplicaCorruptError(f"{self.path}: '{root_key}' must be an object")
            data[root_key] = {}
            needs_save = True

        logger.debug(f"Loaded replica document {self.path}")
        return data, needs_save

    def _current_stat(self) -> Optional[Tuple[int, int]]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def refresh(self) -> bool:
        """Reload the document if another process replaced it."""
        if not self.watch:
            return False
        with self._lock:
            if self._current_stat() == self._stat:
                return False
            tree, _ = self._load(self.root_key)
            self._tree = tree
        logger.info(f"Reloaded changed replica document {self.path}")
        return True

    def _commit(self, tree: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=str(self.path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(tree, f, indent=self.indent, ensure_ascii=False)
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        self._stat = self._current_stat()
