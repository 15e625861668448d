"""
Unit tests for VersionedStore.

Tests cover:
- Identity gating of mutations
- addAttribute / getItem / getIndex / delete over two replicas
- createItem and duplicate
- Record id allocation and table/record views
- History windows on records
"""

import pytest

from dbjson.errors import (
    AlreadyExistsError,
    InsufficientHistoryError,
    InvalidRequestError,
    NoUsernameError,
    NotFoundError,
    UnknownIdError,
)
from dbjson.replica import MISSING, InMemoryReplica, ReadOnlyReplica
from dbjson.store import TimestampClock, VersionedStore


class FrozenTime:
    """Time source stuck on one millisecond."""

    def __init__(self, now=1_000):
        self.now = now

    def __call__(self):
        return self.now


def make_store(local_tree=None, remote_tree=None, username="mitch", now=1_000):
    local = InMemoryReplica("local", tree=local_tree)
    remote = ReadOnlyReplica(InMemoryReplica("remote", tree=remote_tree))
    clock = TimestampClock(time_source=FrozenTime(now))
    return VersionedStore(local, remote, username=username, clock=clock)


def id_entry(record_id, ts, user="sync"):
    return {"id": record_id, "editedBy": user, "timestamp": ts}


class TestIdentity:
    """Tests for identity handling."""

    def test_mutation_without_username_fails(self):
        """addAttribute before identity is set raises NoUsernameError."""
        store = make_store(username=None)
        assert not store.has_identity
        with pytest.raises(NoUsernameError):
            store.add_attribute("songs.Petrichor.tags", "bass")
        assert store.local.dump() == {"database": {}}

    def test_default_sentinel_is_unset(self):
        """The 'default' username counts as unset."""
        store = make_store(username="default")
        with pytest.raises(NoUsernameError):
            store.delete("songs")

    def test_set_identity_enables_writes(self):
        """After set_identity, writes are stamped with that user."""
        store = make_store(username=None)
        store.set_identity("amy", {"theme": "dark"})
        entry = store.add_attribute("songs.Petrichor.tags", "bass")
        assert entry["editedBy"] == "amy"
        assert store.settings == {"theme": "dark"}

    @pytest.mark.parametrize("bad", ["", "default", None])
    def test_set_identity_rejects_sentinels(self, bad):
        """Empty and sentinel usernames cannot be set."""
        store = make_store(username=None)
        with pytest.raises(InvalidRequestError):
            store.set_identity(bad)

    def test_reads_do_not_need_identity(self):
        """Reads work before identity is established."""
        store = make_store(username=None, remote_tree={"database": {"songs": {"P": {}}}})
        assert store.get_index("songs") == ["P"]


class TestAttributes:
    """Tests for raw path operations."""

    def test_add_then_get_round_trip(self):
        """An added value reads back with author and timestamp."""
        store = make_store()
        issued = store.next_timestamp()
        store.add_attribute(["songs", "Petrichor", "tags"], "bass")

        tags = store.get_item("songs.Petrichor")["tags"]
        assert tags[0]["value"] == "bass"
        assert tags[0]["editedBy"] == "mitch"
        assert tags[0]["timestamp"] > issued

    def test_end_to_end_newest_first(self):
        """Two tags read back newest first."""
        store = make_store(username=None)
        store.set_identity("mitch")
        store.add_attribute(["songs", "Petrichor", "tags"], "bass")
        store.add_attribute(["songs", "Petrichor", "tags"], "strings")

        item = store.get_item(["songs", "Petrichor"])
        assert list(item) == ["tags"]
        assert [e["value"] for e in item["tags"]] == ["strings", "bass"]
        assert all(e["editedBy"] == "mitch" for e in item["tags"])

    def test_add_below_history_rejected(self):
        """A path running through an existing history is a request error."""
        store = make_store()
        store.add_attribute("songs.Petrichor.tags", "bass")
        with pytest.raises(InvalidRequestError):
            store.add_attribute("songs.Petrichor.tags.sub", "x")
        assert len(store.get_item("songs.Petrichor.tags")) == 1

    def test_add_onto_item_rejected(self):
        """An item holding attributes cannot take an entry itself."""
        store = make_store()
        store.add_attribute("songs.Petrichor.tags", "bass")
        with pytest.raises(InvalidRequestError):
            store.add_attribute("songs.Petrichor", "x")
        assert list(store.get_item("songs.Petrichor")) == ["tags"]

    def test_timestamps_strictly_increase_within_one_ms(self):
        """Entries written in the same millisecond get distinct timestamps."""
        store = make_store()
        stamps = [store.add_attribute("songs.P.tags", i)["timestamp"] for i in range(5)]
        assert stamps == [1000, 1001, 1002, 1003, 1004]

    def test_watermark_seeded_from_local(self):
        """A restarted store continues after the newest local timestamp."""
        tree = {"database": {"songs": {"P": {"tags": [{"value": "a", "editedBy": "x", "timestamp": 5_000}]}}}}
        store = make_store(local_tree=tree, now=1_000)
        assert store.add_attribute("songs.P.tags", "b")["timestamp"] == 5_001

    def test_add_never_touches_remote(self):
        """Writes go to local only."""
        store = make_store()
        store.add_attribute("songs.P.tags", "bass")
        assert store.remote.inner.commits == 0
        assert store.remote.get(("database",)) == {}

    def test_add_at_root_rejected(self):
        """The root cannot hold a history."""
        with pytest.raises(InvalidRequestError):
            make_store().add_attribute("", 1)

    def test_get_item_merges_replicas(self):
        """Histories from both replicas are interleaved by timestamp."""
        remote = {"database": {"songs": {"P": {
            "tags": [{"value": "remote-old", "editedBy": "sync", "timestamp": 500},
                     {"value": "remote-new", "editedBy": "sync", "timestamp": 5_000}],
            "mix": [{"value": "v1", "editedBy": "sync", "timestamp": 600}],
        }}}}
        store = make_store(remote_tree=remote, now=1_000)
        store.add_attribute("songs.P.tags", "local")

        item = store.get_item("songs.P")
        assert [e["value"] for e in item["tags"]] == ["remote-new", "local", "remote-old"]
        assert item["mix"][0]["value"] == "v1"

    def test_get_item_missing_is_empty(self):
        """A path in neither replica reads as an empty object."""
        assert make_store().get_item("songs.Nothing") == {}

    def test_get_item_leaf_returns_history(self):
        """Reading an attribute path returns its merged history list."""
        store = make_store()
        store.add_attribute("songs.P.tags", "bass")
        assert [e["value"] for e in store.get_item("songs.P.tags")] == ["bass"]

    def test_get_index_union(self):
        """Child keys from both replicas are unioned without duplicates."""
        remote = {"database": {"songs": {"B": {}, "C": {}}}}
        store = make_store(remote_tree=remote)
        store.add_attribute("songs.A.tags", 1)
        store.add_attribute("songs.B.tags", 1)
        assert store.get_index("songs") == ["A", "B", "C"]

    def test_get_index_missing_or_leaf(self):
        """Missing paths and histories have no child keys."""
        store = make_store()
        store.add_attribute("songs.A.tags", 1)
        assert store.get_index("albums") == []
        assert store.get_index("songs.A.tags") == []

    def test_get_index_root(self):
        """The root lists table names."""
        store = make_store(remote_tree={"database": {"albums": {}}})
        store.add_attribute("songs.A.tags", 1)
        assert store.get_index("") == ["songs", "albums"]


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_local_subtree(self):
        """delete drops the local subtree."""
        store = make_store()
        store.add_attribute("songs.A.tags", 1)
        store.add_attribute("songs.B.tags", 1)
        assert store.delete("songs.A") is True
        assert store.get_index("songs") == ["B"]

    def test_delete_missing_is_idempotent(self):
        """Deleting a nonexistent path succeeds without writing."""
        store = make_store()
        store.add_attribute("songs.A.tags", 1)
        commits = store.local.commits
        assert store.delete("songs.Nope") is False
        assert store.local.commits == commits

    def test_delete_must_exist(self):
        """Strict delete of a missing path raises NotFoundError."""
        with pytest.raises(NotFoundError):
            make_store().delete("songs.Nope", must_exist=True)

    def test_remote_history_survives_local_delete(self):
        """Remote data stays visible after deleting the local copy."""
        remote = {"database": {"songs": {"A": {"tags": [{"value": "r", "editedBy": "s", "timestamp": 1}]}}}}
        store = make_store(remote_tree=remote)
        store.add_attribute("songs.A.tags", "l")
        store.delete("songs.A")
        assert [e["value"] for e in store.get_item("songs.A")["tags"]] == ["r"]


class TestCreateAndDuplicate:
    """Tests for create_item and duplicate."""

    def test_create_item_adds_each_attribute(self):
        """One entry per attribute is appended."""
        store = make_store()
        entries = store.create_item("songs.P", {"tags": "bass", "bpm": 92})
        assert len(entries) == 2
        item = store.get_item("songs.P")
        assert item["tags"][0]["value"] == "bass"
        assert item["bpm"][0]["value"] == 92

    def test_create_item_if_new_rejects_existing(self):
        """ifNew refuses to write over an existing item."""
        store = make_store()
        store.create_item("songs.P", {"tags": "bass"})
        with pytest.raises(AlreadyExistsError):
            store.create_item("songs.P", {"tags": "strings"})

    def test_create_item_conflict_writes_nothing(self):
        """If one attribute cannot be appended, none are."""
        store = make_store()
        store.add_attribute("songs.P.meta.source", "import")
        with pytest.raises(InvalidRequestError):
            store.create_item("songs.P", {"tags": "bass", "meta": "x"}, if_new=False)
        assert list(store.get_item("songs.P")) == ["meta"]

    def test_duplicate_below_history_rejected(self):
        """A target inside an existing history is a request error."""
        store = make_store()
        store.add_attribute("songs.P.tags", "bass")
        with pytest.raises(InvalidRequestError):
            store.duplicate("songs.P", "songs.P.tags.copy")

    def test_create_item_existing_in_remote(self):
        """An item known only to the remote also counts as existing."""
        remote = {"database": {"songs": {"P": {"tags": [{"value": "r", "editedBy": "s", "timestamp": 1}]}}}}
        with pytest.raises(AlreadyExistsError):
            make_store(remote_tree=remote).create_item("songs.P", {"tags": "x"})

    def test_create_item_without_if_new_appends(self):
        """With ifNew=False, existing items get new entries."""
        store = make_store()
        store.create_item("songs.P", {"tags": "bass"})
        store.create_item("songs.P", {"tags": "strings"}, if_new=False)
        assert len(store.get_item("songs.P.tags")) == 2

    def test_duplicate_copies_merged_history(self):
        """duplicate writes local+remote history under the new name."""
        remote = {"database": {"songs": {"P": {"mix": [{"value": "v1", "editedBy": "s", "timestamp": 1}]}}}}
        store = make_store(remote_tree=remote)
        store.add_attribute("songs.P.tags", "bass")

        store.duplicate("songs.P", "songs.P2")
        copy = store.local.get(("database", "songs", "P2"))
        assert copy["mix"][0]["value"] == "v1"
        assert copy["tags"][0]["value"] == "bass"
        assert store.remote.get(("database", "songs", "P2")) is MISSING

    def test_duplicate_missing_source(self):
        """Duplicating nothing raises NotFoundError."""
        with pytest.raises(NotFoundError):
            make_store().duplicate("songs.Nope", "songs.Copy")

    def test_duplicate_onto_existing(self):
        """Duplicating onto an existing item raises AlreadyExistsError."""
        store = make_store()
        store.add_attribute("songs.A.tags", 1)
        store.add_attribute("songs.B.tags", 2)
        with pytest.raises(AlreadyExistsError):
            store.duplicate("songs.A", "songs.B")


class TestRecords:
    """Tests for id allocation and record/table views."""

    def test_next_id_empty_table_is_zero(self):
        """A table without ids allocates 0 first."""
        assert make_store().next_id("songs") == 0

    def test_next_id_spans_replicas(self):
        """Ids {0,1,2} locally and {3} remotely allocate 4."""
        local = {"database": {"songs": {"id": [id_entry(0, 1), id_entry(1, 2), id_entry(2, 3)]}}}
        remote = {"database": {"songs": {"id": [id_entry(3, 4)]}}}
        assert make_store(local_tree=local, remote_tree=remote).next_id("songs") == 4

    def test_next_id_table_only_in_remote(self):
        """Ids are taken from whichever replica has the table."""
        remote = {"database": {"songs": {"id": [id_entry(7, 4)]}}}
        assert make_store(remote_tree=remote).next_id("songs") == 8

    def test_new_record_allocates_and_writes(self):
        """new_record appends the id and one entry per column."""
        store = make_store()
        first = store.new_record("mitch", "songs", {"name": {"name": "Petrichor"}, "bpm": 92})
        second = store.new_record("mitch", "songs", {"name": {"name": "Drift"}})
        assert (first, second) == (0, 1)

        record = store.get_record("songs", 0, "all")
        assert record["name"]["name"] == "Petrichor"
        assert record["name"]["id"] == 0
        assert record["bpm"]["value"] == 92
        assert "id" not in record

    def test_new_record_needs_username(self):
        """A record cannot be created anonymously."""
        store = make_store(username=None)
        with pytest.raises(NoUsernameError):
            store.new_record(None, "songs", {"bpm": 1})
        assert store.next_id("songs") == 0

    def test_new_record_uses_explicit_username(self):
        """The explicit username stamps the entries."""
        store = make_store(username=None)
        store.new_record("amy", "songs", {"bpm": 1})
        assert store.get_record("songs", 0, ["bpm"])["bpm"]["editedBy"] == "amy"

    def test_update_unknown_id(self):
        """Updating an id that was never allocated fails."""
        store = make_store()
        store.new_record("mitch", "songs", {"bpm": 90})
        with pytest.raises(UnknownIdError):
            store.update_record("mitch", 5, "songs", {"bpm": 100})

    def test_update_id_column_rejected(self):
        """The id column is owned by the store."""
        store = make_store()
        store.new_record("mitch", "songs", {})
        with pytest.raises(InvalidRequestError):
            store.update_record("mitch", 0, "songs", {"id": 3})

    def test_rejected_new_record_allocates_nothing(self):
        """A new record with an id column leaves the id history untouched."""
        store = make_store()
        with pytest.raises(InvalidRequestError):
            store.new_record(None, "songs", {"id": 5, "name": "x"})
        assert store._get_id_list("songs") == []
        assert store.get_item("songs") == {}
        assert store.new_record(None, "songs", {"name": "x"}) == 0

    def test_new_record_column_conflict_writes_nothing(self):
        """A column that cannot take entries fails before any write."""
        store = make_store()
        store.new_record(None, "songs", {"bpm": 90})
        store.add_attribute("songs.meta.source", "import")
        with pytest.raises(InvalidRequestError):
            store.new_record(None, "songs", {"bpm": 100, "meta": "x"})
        assert store._get_id_list("songs") == [0]
        assert len(store.get_item("songs.bpm")) == 1

    def test_update_record_column_conflict_writes_nothing(self):
        """update_record checks every column before appending."""
        store = make_store()
        store.new_record(None, "songs", {"bpm": 90})
        store.add_attribute("songs.meta.source", "import")
        with pytest.raises(InvalidRequestError):
            store.update_record(None, 0, "songs", {"bpm": 100, "meta": "x"})
        assert len(store.get_item("songs.bpm")) == 1

    def test_new_record_value_must_be_object(self):
        """Non-object record values are rejected."""
        store = make_store()
        with pytest.raises(InvalidRequestError):
            store.new_record(None, "songs", ["bpm"])
        assert store._get_id_list("songs") == []

    def test_update_flattening_keeps_record_id(self):
        """Object values cannot override the entry's id."""
        store = make_store()
        store.new_record("mitch", "songs", {})
        store.update_record("mitch", 0, "songs", {"name": {"name": "P", "id": 99}})
        assert store.get_record("songs", 0, ["name"])["name"]["id"] == 0

    def test_update_record_known_only_remotely(self):
        """An id synced from the remote can be updated locally."""
        remote = {"database": {"songs": {"id": [id_entry(3, 4)]}}}
        store = make_store(remote_tree=remote)
        assert store.update_record("mitch", 3, "songs", {"bpm": 120}) is True
        assert store.get_record("songs", 3)["bpm"]["value"] == 120

    def test_record_window(self):
        """numEntries selects newest entries per column."""
        store = make_store()
        store.new_record("mitch", "songs", {"bpm": 0})
        for bpm in range(1, 5):
            store.update_record("mitch", 0, "songs", {"bpm": bpm})

        assert store.get_record("songs", 0, ["bpm"])["bpm"]["value"] == 4
        everything = store.get_record("songs", 0, ["bpm"], "all")["bpm"]
        assert [e["value"] for e in everything] == [4, 3, 2, 1, 0]
        assert [e["value"] for e in store.get_record("songs", 0, ["bpm"], 2)["bpm"]] == [4, 3]
        with pytest.raises(InsufficientHistoryError):
            store.get_record("songs", 0, ["bpm"], 10)

    def test_record_filters_by_id(self):
        """Only the requested record's entries are returned."""
        store = make_store()
        store.new_record("mitch", "songs", {"bpm": 90})
        store.new_record("mitch", "songs", {"bpm": 120})
        assert [e["value"] for e in store.get_record("songs", 1, ["bpm"], "all")["bpm"]] == [120]

    def test_record_merges_remote_history(self):
        """Remote entries for the same id are interleaved by timestamp."""
        remote = {"database": {"songs": {
            "id": [id_entry(0, 1)],
            "bpm": [{"id": 0, "value": 80, "editedBy": "sync", "timestamp": 9_999}],
        }}}
        store = make_store(remote_tree=remote, now=1_000)
        store.update_record("mitch", 0, "songs", {"bpm": 90})
        assert [e["value"] for e in store.get_record("songs", 0, ["bpm"], "all")["bpm"]] == [80, 90]

    def test_record_columns_forms(self):
        """'all', ['all'] and a single name are accepted."""
        store = make_store()
        store.new_record("mitch", "songs", {"bpm": 90, "key": "Am"})
        assert set(store.get_record("songs", 0, "all")) == {"bpm", "key"}
        assert set(store.get_record("songs", 0, ["all"])) == {"bpm", "key"}
        assert set(store.get_record("songs", 0, "key")) == {"key"}

    def test_record_missing_table_or_column(self):
        """Unknown tables and columns yield empty results."""
        store = make_store()
        store.new_record("mitch", "songs", {"bpm": 90})
        assert store.get_record("albums", 0) == {}
        assert store.get_record("songs", 0, ["scratch"]) == {}

    def test_invalid_window_rejected(self):
        """Bad numEntries values are rejected even for empty tables."""
        with pytest.raises(InvalidRequestError):
            make_store().get_record("songs", 0, "all", -2)

    def test_get_table_collects_non_empty_records(self):
        """get_table returns records in id order and skips empty ones."""
        store = make_store()
        store.new_record("mitch", "songs", {"name": {"name": "A"}, "scratch": "a.wav"})
        store.new_record("mitch", "songs", {"name": {"name": "B"}})
        store.new_record("mitch", "songs", {"name": {"name": "C"}, "scratch": "c.wav"})

        names = store.get_table("songs", ["name"])
        assert [r["name"]["name"] for r in names] == ["A", "B", "C"]

        scratch = store.get_table("songs", ["scratch"])
        assert [r["scratch"]["id"] for r in scratch] == [0, 2]

    def test_get_table_spans_replicas(self):
        """Records known to either replica are listed."""
        remote = {"database": {"songs": {
            "id": [id_entry(0, 1)],
            "name": [{"id": 0, "name": "Remote", "editedBy": "sync", "timestamp": 2}],
        }}}
        store = make_store(remote_tree=remote)
        store.new_record("mitch", "songs", {"name": {"name": "Local"}})
        assert [r["name"]["name"] for r in store.get_table("songs", ["name"])] == ["Remote", "Local"]

    def test_get_table_missing(self):
        """A table that exists nowhere is empty."""
        assert make_store().get_table("songs") == []
