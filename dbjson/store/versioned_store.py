"""
Versioned attribute store over a local and a remote replica.

The store appends authored, timestamped attribute entries to the local
replica and answers reads by merging the local tree with the remote
mirror. On top of raw paths it offers a table/record view:

    database.<table>.id        -> id history  [{id, editedBy, timestamp}, ...]
    database.<table>.<column>  -> column history [{id, ..., editedBy, timestamp}, ...]

Invariants:
    - Entries are only ever appended; delete removes whole local subtrees
    - The remote replica is never written
    - Timestamps issued by one store strictly increase
    - Reads sort history by timestamp, never by append order

How to change safely:
    - Route every write through _append() so entries stay uniformly stamped
    - Keep domain failures as DbJsonError subclasses; the dispatcher turns
      them into structured results
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config import DEFAULT_ROOT_KEY
from ..errors import (
    AlreadyExistsError,
    InvalidRequestError,
    NoUsernameError,
    NotFoundError,
    UnknownIdError,
)
from ..path import PathLike, StorePath
from ..replica import MISSING, Replica, ReplicaPathError
from .clock import TimestampClock
from .history import ALL, parse_window, select_window
from .merge import is_entry, merge_trees

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "default"
ID_COLUMN = "id"

Columns = Union[str, Sequence[str], None]


class VersionedStore:
    """Append-only attribute history with merged local/remote reads.

    Attributes:
        local: Writable replica
        remote: Read-only mirror maintained by an external sync process
        clock: Timestamp source for new entries
        settings: Opaque host settings handed over with the identity

    Example:
        >>> store = VersionedStore(InMemoryReplica("local"), InMemoryReplica("remote"))
        >>> store.set_identity("mitch")
        >>> entry = store.add_attribute(["songs", "Petrichor", "tags"], "bass")
        >>> store.get_item("songs.Petrichor")["tags"][0]["value"]
        'bass'
    """

    def __init__(
        self,
        local: Replica,
        remote: Replica,
        username: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        clock: Optional[TimestampClock] = None,
        root_key: str = DEFAULT_ROOT_KEY,
    ) -> None:
        """Initialize the store.

        Args:
            local: Writable replica
            remote: Read-only replica
            username: Acting identity, if already known
            settings: Host settings
            clock: Timestamp source (defaults to wall clock)
            root_key: Top-level key of both replicas
        """
        self.local = local
        self.remote = remote
        self.root_key = root_key
        self.settings: Dict[str, Any] = dict(settings or {})
        self._username = username or DEFAULT_USERNAME
        self.clock = clock or TimestampClock()

        # A restart within the same millisecond must not reuse a timestamp
        self.clock.advance_to(_max_timestamp(self.local.get((root_key,))))

    # ── Identity ──────────────────────────────────────────────

    @property
    def username(self) -> str:
        return self._username

    @property
    def has_identity(self) -> bool:
        return _valid_username(self._username)

    def set_identity(self, username: str, settings: Optional[Dict[str, Any]] = None) -> None:
        """Establish the acting user. Required before any mutation.

        Raises:
            InvalidRequestError: If username is empty or the unset sentinel
        """
        if not _valid_username(username):
            raise InvalidRequestError(f"Invalid username {username!r}")
        self._username = username
        if settings is not None:
            self.settings = dict(settings)
        logger.info(f"Identity set to {username}")

    def _require_identity(self, operation: str, username: Optional[str] = None) -> str:
        user = self._username if username is None else username
        if not _valid_username(user):
            logger.warning(f"Rejected {operation}: username is not set")
            raise NoUsernameError(operation)
        return user

    # ── Allocation ────────────────────────────────────────────

    def next_timestamp(self) -> int:
        """Current time in ms, strictly greater than any issued before."""
        return self.clock.next()

    def path(self, value: PathLike) -> StorePath:
        return StorePath.parse(value, self.root_key)

    # ── Raw path operations ───────────────────────────────────

    def _read(self, path: StorePath) -> Any:
        self.remote.refresh()
        return merge_trees(self.local.get(path.segments), self.remote.get(path.segments))

    def _check_shape(self, path: StorePath, history: bool = True) -> None:
        """Raise InvalidRequestError if the local tree cannot take a write at path.

        Every existing ancestor must be an object; with history=True an
        existing leaf must be an entry list.
        """
        segments = path.segments
        for depth in range(1, len(segments) + 1):
            node = self.local.get(segments[:depth])
            if node is MISSING:
                return
            if depth < len(segments) and not isinstance(node, dict):
                raise InvalidRequestError(
                    f"Cannot write under '{'.'.join(segments[:depth])}': holds {type(node).__name__}"
                )
        if history and not isinstance(node, list):
            raise InvalidRequestError(f"Cannot append to '{path}': holds {type(node).__name__}, not list")

    def _append(self, path: StorePath, fields: Dict[str, Any], user: str) -> Dict[str, Any]:
        entry = dict(fields)
        entry["editedBy"] = user
        entry["timestamp"] = self.next_timestamp()
        try:
            self.local.append(path.segments, entry)
        except ReplicaPathError as e:
            raise InvalidRequestError(str(e)) from e
        return entry

    def add_attribute(self, path: PathLike, value: Any) -> Dict[str, Any]:
        """Append a new entry to the local history at path.

        Args:
            path: Dotted string or segment list
            value: Any JSON-compatible value

        Returns:
            The appended entry

        Raises:
            NoUsernameError: If identity is not set
            InvalidRequestError: If path runs through an existing history
        """
        user = self._require_identity("addAttribute")
        store_path = self.path(path)
        if store_path.is_root:
            raise InvalidRequestError("Cannot add an attribute at the root")

        entry = self._append(store_path, {"value": value}, user)
        logger.info(
            f"Added attribute {store_path}",
            extra={"path": str(store_path), "user": user, "timestamp": entry["timestamp"]},
        )
        return entry

    def get_item(self, path: PathLike) -> Any:
        """Merged subtree at path; {} when neither replica has it."""
        merged = self._read(self.path(path))
        if merged is MISSING:
            return {}
        return merged

    def get_index(self, path: PathLike) -> List[str]:
        """Union of the immediate child keys under path in both replicas."""
        store_path = self.path(path)
        self.remote.refresh()
        keys: List[str] = []
        for replica in (self.local, self.remote):
            node = replica.get(store_path.segments)
            if isinstance(node, dict):
                keys.extend(k for k in node if k not in keys)
        return keys

    def delete(self, path: PathLike, must_exist: bool = False) -> bool:
        """Remove the subtree at path from the local replica only.

        Remote history under the same path stays visible to reads.

        Args:
            path: Dotted string or segment list
            must_exist: Raise NotFoundError instead of succeeding silently

        Returns:
            True if something was removed locally
        """
        self._require_identity("delete")
        store_path = self.path(path)
        removed = self.local.unset(store_path.segments)
        if not removed and must_exist:
            raise NotFoundError(str(store_path))
        if removed:
            logger.info(f"Deleted {store_path}", extra={"path": str(store_path), "user": self.username})
        return removed

    def create_item(
        self,
        path: PathLike,
        attributes: Dict[str, Any],
        if_new: bool = True,
    ) -> List[Dict[str, Any]]:
        """Add one attribute entry per key under path.

        Raises:
            AlreadyExistsError: If if_new and path already holds data
        """
        user = self._require_identity("createItem")
        store_path = self.path(path)
        if if_new and self.get_item(store_path):
            raise AlreadyExistsError(str(store_path))
        for attr in attributes:
            self._check_shape(store_path.child(attr))

        entries = [
            self._append(store_path.child(attr), {"value": value}, user)
            for attr, value in attributes.items()
        ]
        logger.info(f"Created {store_path} with {len(entries)} attributes", extra={"path": str(store_path), "user": user})
        return entries

    def duplicate(self, source: PathLike, target: PathLike) -> Any:
        """Copy the merged history at source into local at target.

        Raises:
            NotFoundError: If source holds nothing
            AlreadyExistsError: If target already holds data
        """
        self._require_identity("duplicate")
        src = self.path(source)
        dst = self.path(target)
        if dst.is_root:
            raise InvalidRequestError("Cannot duplicate onto the root")

        tree = self.get_item(src)
        if not tree:
            raise NotFoundError(str(src))
        if self.get_item(dst):
            raise AlreadyExistsError(str(dst))
        self._check_shape(dst, history=False)

        try:
            self.local.set(dst.segments, tree)
        except ReplicaPathError as e:
            raise InvalidRequestError(str(e)) from e
        logger.info(f"Duplicated {src} to {dst}", extra={"path": str(dst), "user": self.username})
        return tree

    # ── Table / record operations ─────────────────────────────

    def _get_id_list(self, table: str) -> List[Any]:
        """Ids present in the table's id history of either replica."""
        history = self.get_item(self.path([table, ID_COLUMN]))
        ids: List[Any] = []
        if isinstance(history, list):
            for entry in history:
                if isinstance(entry, dict) and ID_COLUMN in entry and entry[ID_COLUMN] not in ids:
                    ids.append(entry[ID_COLUMN])
        return sorted(ids, key=_id_sort_key)

    def next_id(self, table: str) -> int:
        """max(existing ids) + 1, or 0 for a table with no ids anywhere."""
        ids = [i for i in self._get_id_list(table) if isinstance(i, int) and not isinstance(i, bool)]
        if not ids:
            return 0
        return max(ids) + 1

    def _check_record_value(self, table: str, new_value: Any) -> None:
        if not isinstance(new_value, dict):
            raise InvalidRequestError(f"Record value must be an object, got {type(new_value).__name__}")
        if ID_COLUMN in new_value:
            raise InvalidRequestError(f"Column '{ID_COLUMN}' is managed by the store")
        for column in new_value:
            self._check_shape(self.path([table, column]))

    def _write_columns(self, user: str, record_id: Any, table: str, new_value: Dict[str, Any]) -> None:
        for column, value in new_value.items():
            fields: Dict[str, Any] = {ID_COLUMN: record_id}
            if isinstance(value, dict):
                fields.update(value)
                fields[ID_COLUMN] = record_id
            else:
                fields["value"] = value
            self._append(self.path([table, column]), fields, user)

    def update_record(
        self,
        username: Optional[str],
        record_id: Any,
        table: str,
        new_value: Dict[str, Any],
    ) -> bool:
        """Append one entry per key of new_value to the record's columns.

        Object values are flattened into the entry; other values are
        stored under "value". Nothing is written unless every column
        can take the new entry.

        Raises:
            NoUsernameError: If username is not set
            UnknownIdError: If record_id is not in the table's id history
            InvalidRequestError: If new_value is not an object, names the
                id column, or a column path is not a history
        """
        user = self._require_identity("updateRecord", username)
        self._check_record_value(table, new_value)
        if record_id not in self._get_id_list(table):
            logger.warning(f"Rejected updateRecord: unknown id {record_id!r} in {table}")
            raise UnknownIdError(table, record_id)

        self._write_columns(user, record_id, table, new_value)
        logger.info(
            f"Updated record {table}/{record_id}",
            extra={"table": table, "id": record_id, "columns": list(new_value), "user": user},
        )
        return True

    def new_record(self, username: Optional[str], table: str, new_value: Dict[str, Any]) -> int:
        """Allocate the next id for table and write new_value under it.

        The id is only allocated once new_value has been accepted, so a
        rejected call leaves the id history untouched.
        """
        user = self._require_identity("newRecord", username)
        id_path = self.path([table, ID_COLUMN])
        self._check_record_value(table, new_value)
        self._check_shape(id_path)

        record_id = self.next_id(table)
        self._append(id_path, {ID_COLUMN: record_id}, user)
        logger.info(f"Allocated id {record_id} in {table}", extra={"table": table, "id": record_id, "user": user})
        self._write_columns(user, record_id, table, new_value)
        return record_id

    def get_record(
        self,
        table: str,
        record_id: Any,
        columns: Columns = ALL,
        num_entries: Any = 1,
    ) -> Dict[str, Any]:
        """History of one record, windowed per column.

        Columns without any entry for record_id are left out.

        Args:
            table: Table name
            record_id: Record id
            columns: Column names, 'all' or ['all'] for every column but id
            num_entries: History window ('all', 0, 1 or N)

        Raises:
            InsufficientHistoryError: If a column has fewer than N entries
        """
        window = parse_window(num_entries)
        merged = self.get_item(self.path([table]))
        if not isinstance(merged, dict):
            return {}
        return self._select_record(merged, record_id, self._resolve_columns(merged, columns), window)

    def get_table(self, table: str, columns: Columns = ALL, num_entries: Any = 1) -> List[Dict[str, Any]]:
        """Every non-empty record of table, in id order."""
        window = parse_window(num_entries)
        merged = self.get_item(self.path([table]))
        if not isinstance(merged, dict):
            return []
        selected = self._resolve_columns(merged, columns)

        records = []
        for record_id in self._get_id_list(table):
            record = self._select_record(merged, record_id, selected, window)
            if record:
                records.append(record)
        return records

    def _resolve_columns(self, merged: Dict[str, Any], columns: Columns) -> List[str]:
        if columns is None or columns == ALL or (
            isinstance(columns, (list, tuple)) and list(columns) == [ALL]
        ):
            return [c for c in merged if c != ID_COLUMN]
        if isinstance(columns, str):
            return [columns]
        return list(columns)

    def _select_record(
        self,
        merged: Dict[str, Any],
        record_id: Any,
        columns: List[str],
        window: Any,
    ) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        for column in columns:
            history = merged.get(column)
            if not isinstance(history, list):
                continue
            matching = [e for e in history if is_entry(e) and e.get(ID_COLUMN) == record_id]
            if matching:
                record[column] = select_window(matching, window, column)
        return record


def _valid_username(username: Optional[str]) -> bool:
    return bool(username) and username != DEFAULT_USERNAME


def _id_sort_key(value: Any) -> tuple:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value))


def _max_timestamp(tree: Any) -> int:
    if isinstance(tree, dict):
        best = tree["timestamp"] if is_entry(tree) else 0
        return max([best] + [_max_timestamp(v) for v in tree.values()])
    if isinstance(tree, list):
        return max([0] + [_max_timestamp(v) for v in tree])
    return 0
