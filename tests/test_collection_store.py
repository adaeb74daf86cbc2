import json
import os

import pytest

from fundchat.errors import StoreUnavailable
from fundchat.storage import CollectionStore


def test_unknown_collection_bootstraps_empty(store):
    assert store.read("chats") == []
    path = store.path_for("chats")
    assert path.exists()
    assert json.loads(path.read_text()) == []
    # idempotent
    assert store.read("chats") == []


def test_write_then_read_preserves_order(store):
    records = [{"id": "b"}, {"id": "a"}, {"id": "c"}]
    store.write("projects", records)
    assert [r["id"] for r in store.read("projects")] == ["b", "a", "c"]


def test_write_replaces_full_snapshot(store):
    store.write("accounts", [{"email": "alice"}, {"email": "bob"}])
    store.write("accounts", [{"email": "carol"}])
    assert store.read("accounts") == [{"email": "carol"}]


@pytest.mark.parametrize("content", ["", "   \n", "{not json", '{"a": 1}', "42"])
def test_corrupt_or_non_list_reads_empty(store, content, caplog):
    path = store.path_for("accounts")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    assert store.read("accounts") == []


def test_corrupt_file_is_logged(store, caplog):
    path = store.path_for("accounts")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[{broken")
    with caplog.at_level("WARNING"):
        store.read("accounts")
    assert any("not valid JSON" in r.message for r in caplog.records)


def test_non_dict_entries_are_skipped(store):
    path = store.path_for("projects")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('[{"id": "p1"}, 3, "x", {"id": "p2"}]')
    assert store.read("projects") == [{"id": "p1"}, {"id": "p2"}]


def test_no_temp_files_left_behind(store):
    store.write("chats", [{"chatId": "c1"}])
    leftovers = [p for p in os.listdir(store.data_dir) if p.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.parametrize("name", ["../escape", "a/b", "", "with space", "x.json"])
def test_invalid_collection_names_rejected(store, name):
    with pytest.raises(ValueError):
        store.path_for(name)


def test_unwritable_location_raises_store_unavailable(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("i am a file, not a directory")
    bad = CollectionStore(blocker / "data")
    with pytest.raises(StoreUnavailable):
        bad.write("accounts", [])


def test_unreadable_collection_raises_store_unavailable(store):
    # A directory where the snapshot file should be cannot be read as bytes.
    store.path_for("accounts").mkdir(parents=True)
    with pytest.raises(StoreUnavailable):
        store.read("accounts")


def test_collections_lists_snapshots(store):
    store.read("chats")
    store.write("accounts", [])
    assert store.collections() == ["accounts", "chats"]


# ---------------------------------------------------------------------------
# journaled commits
# ---------------------------------------------------------------------------


def test_write_many_commits_all_and_clears_journal(store):
    store.write("accounts", [{"email": "a", "money": 10}])
    store.write_many({
        "accounts": [{"email": "a", "money": 5}],
        "projects": [{"id": "p", "investedAmount": 5}],
    })
    assert store.read("accounts") == [{"email": "a", "money": 5}]
    assert store.read("projects") == [{"id": "p", "investedAmount": 5}]
    assert not store.journal_path.exists()
    assert "txn" not in store.collections()


def test_stale_journal_restores_pre_images_on_read(store):
    store.write("accounts", [{"email": "a", "money": 5}])
    store.journal_path.write_text(json.dumps({"collections": {"accounts": [{"email": "a", "money": 10}]}}))

    assert store.read("accounts") == [{"email": "a", "money": 10}]
    assert not store.journal_path.exists()
    assert store.recover() is False


def test_unreadable_journal_blocks_reads(store):
    store.write("accounts", [])
    store.journal_path.write_text("{not json")
    with pytest.raises(StoreUnavailable):
        store.read("accounts")
    assert store.journal_path.exists()
