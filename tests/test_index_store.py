"""Tests for the sidecar index store."""

import json

import pytest

from pkm_vault.exceptions import ErrorCode, StorageError
from pkm_vault.models.schema import IndexEntry, NoteRecord


def _codes(diagnostics):
    return [issue.code for issue in diagnostics.recent()]


class TestIndexStoreRead:
    """Tests for IndexStore.read."""

    def test_missing_file_is_empty_and_silent(self, index_store, diagnostics):
        assert index_store.read() == []
        assert len(diagnostics) == 0

    def test_invalid_json_is_reported(self, index_store, diagnostics):
        index_store.index_path.write_text("{not json", encoding="utf-8")
        assert index_store.read() == []
        assert _codes(diagnostics) == [ErrorCode.INDEX_CORRUPTED]

    def test_top_level_must_be_list(self, index_store, diagnostics):
        index_store.index_path.write_text('{"path": "a.md"}', encoding="utf-8")
        assert index_store.read() == []
        assert _codes(diagnostics) == [ErrorCode.INDEX_CORRUPTED]

    def test_bad_entries_rejected_individually(self, index_store, diagnostics):
        index_store.index_path.write_text(
            json.dumps(
                [
                    {"path": "good.md", "title": "Good", "linksOut": ["X"]},
                    {"title": "no path"},
                    {"path": "bad-tags.md", "tags": "not-a-list"},
                    "not an object",
                ]
            ),
            encoding="utf-8",
        )
        entries = index_store.read()
        assert [e.path for e in entries] == ["good.md"]
        assert entries[0].links_out == ["X"]
        assert _codes(diagnostics) == [ErrorCode.INDEX_ENTRY_REJECTED] * 3

    def test_rejection_reports_path(self, index_store, diagnostics):
        index_store.index_path.write_text(
            json.dumps([{"path": "x.md", "title": 5}]), encoding="utf-8"
        )
        assert index_store.read() == []
        assert diagnostics.recent()[0].path == "x.md"

    def test_naive_timestamps_become_utc(self, index_store):
        index_store.index_path.write_text(
            json.dumps([{"path": "a.md", "createdAt": "2024-01-02T03:04:05"}]),
            encoding="utf-8",
        )
        entry = index_store.read()[0]
        assert entry.created_at.tzinfo is not None


class TestIndexStoreWrite:
    """Tests for IndexStore.write."""

    def test_writes_camel_case_without_markdown(self, index_store):
        record = NoteRecord(
            path="Inbox/Hello.md", title="Hello", links_out=["Other"], markdown="# Hello"
        )
        index_store.write([record])

        data = json.loads(index_store.index_path.read_text(encoding="utf-8"))
        assert len(data) == 1
        assert data[0]["path"] == "Inbox/Hello.md"
        assert data[0]["linksOut"] == ["Other"]
        assert "isTemplate" in data[0]
        assert "markdown" not in data[0]

    def test_two_space_indent(self, index_store):
        index_store.write([IndexEntry(path="a.md")])
        text = index_store.index_path.read_text(encoding="utf-8")
        assert text.startswith("[\n  {\n    ")

    def test_replaces_not_merges(self, index_store):
        index_store.write([{"path": "a.md"}, {"path": "b.md"}])
        index_store.write([{"path": "c.md"}])
        assert [e.path for e in index_store.read()] == ["c.md"]

    def test_no_temp_file_left(self, index_store, vault_root):
        index_store.write([{"path": "a.md"}])
        assert sorted(p.name for p in vault_root.iterdir()) == [".vault-index.json"]

    def test_round_trip_keeps_metadata(self, index_store):
        record = NoteRecord(path="a.md", title="A", tags=["t"], notebook="Work")
        index_store.write([record])
        entry = index_store.read()[0]
        assert (entry.id, entry.title, entry.tags, entry.notebook) == (
            record.id,
            "A",
            ["t"],
            "Work",
        )
        assert entry.created_at == record.created_at

    def test_write_failure_raises_storage_error(self, tmp_path):
        from pkm_vault.storage.index_store import IndexStore

        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = IndexStore(blocker / "nested" / ".vault-index.json")
        with pytest.raises(StorageError) as exc_info:
            store.write([])
        assert exc_info.value.code == ErrorCode.STORAGE_WRITE_FAILED
