"""Tests for vault hydration at startup."""

import json

from pkm_vault.exceptions import ErrorCode
from pkm_vault.storage.hydrator import iter_markdown_files


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestLoad:
    """Tests for VaultHydrator.load."""

    def test_empty_vault_returns_none(self, hydrator):
        assert hydrator.load() is None

    def test_creates_missing_vault_root(self, hydrator, vault_root):
        vault_root.rmdir()
        assert hydrator.load() is None
        assert vault_root.is_dir()

    def test_hydrates_from_index(self, writer, hydrator):
        writer.save([{"path": "Inbox/Hello", "markdown": "# Hello\n\nWorld #demo [[Other]]"}])
        notes = hydrator.load()
        assert len(notes) == 1
        note = notes[0]
        assert note.path == "Inbox/Hello.md"
        assert note.title == "Hello"
        assert note.tags == ["demo"]
        assert note.links_out == ["Other"]
        assert note.markdown == "# Hello\n\nWorld #demo [[Other]]"

    def test_index_metadata_is_kept(self, writer, hydrator, vault_root):
        writer.save([{"path": "a", "markdown": "# Derived", "title": "Custom"}])
        assert hydrator.load()[0].title == "Custom"

    def test_falls_back_to_scan_without_index(self, writer, hydrator, vault_root):
        writer.save(
            [
                {"path": "Projects/Plan", "markdown": "# Plan\n#work"},
                {"path": "Loose", "markdown": "# Loose"},
            ]
        )
        (vault_root / ".vault-index.json").unlink()

        notes = hydrator.load()
        by_path = {note.path: note for note in notes}
        assert set(by_path) == {"Projects/Plan.md", "Loose.md"}
        assert by_path["Projects/Plan.md"].notebook == "Projects"
        assert by_path["Projects/Plan.md"].tags == ["work"]
        assert by_path["Loose.md"].notebook == "Inbox"

    def test_corrupt_index_falls_back_to_scan(self, hydrator, vault_root, diagnostics):
        _write(vault_root / "note.md", "# Note")
        _write(vault_root / ".vault-index.json", "[broken")
        notes = hydrator.load()
        assert [n.path for n in notes] == ["note.md"]
        assert diagnostics.recent()[0].code == ErrorCode.INDEX_CORRUPTED

    def test_stale_entries_skipped_and_reported(self, hydrator, vault_root, diagnostics):
        _write(vault_root / "exists.md", "# Exists")
        _write(
            vault_root / ".vault-index.json",
            json.dumps([{"path": "exists.md"}, {"path": "deleted.md"}]),
        )
        notes = hydrator.load()
        assert [n.path for n in notes] == ["exists.md"]
        issue = diagnostics.recent()[0]
        assert issue.code == ErrorCode.INDEX_STALE_ENTRY
        assert issue.path == "deleted.md"

    def test_non_empty_index_wins_over_scan(self, hydrator, vault_root):
        _write(vault_root / "indexed.md", "# Indexed")
        _write(vault_root / "unindexed.md", "# New")
        _write(vault_root / ".vault-index.json", json.dumps([{"path": "indexed.md"}]))
        assert [n.path for n in hydrator.load()] == ["indexed.md"]

    def test_fully_stale_index_falls_back_to_scan(self, hydrator, vault_root):
        _write(vault_root / "real.md", "# Real")
        _write(vault_root / ".vault-index.json", json.dumps([{"path": "ghost.md"}]))
        assert [n.path for n in hydrator.load()] == ["real.md"]

    def test_index_paths_are_sanitized(self, hydrator, vault_root):
        _write(vault_root / "etc" / "passwd.md", "# inside")
        _write(
            vault_root / ".vault-index.json", json.dumps([{"path": "../../etc/passwd"}])
        )
        assert [n.path for n in hydrator.load()] == ["etc/passwd.md"]

    def test_scan_uses_file_times(self, hydrator, vault_root):
        _write(vault_root / "n.md", "# n")
        note = hydrator.load()[0]
        assert note.created_at.tzinfo is not None
        assert note.updated_at.tzinfo is not None


class TestIdempotence:
    def test_save_of_load_changes_nothing(self, writer, hydrator, vault_root):
        writer.save(
            [
                {"path": "Inbox/Hello", "markdown": "# Hello\n\nWorld #demo [[Other]]"},
                {"path": "Work/Plan", "markdown": "# Plan\r\nwindows body"},
            ]
        )
        index_path = vault_root / ".vault-index.json"
        before = index_path.read_text(encoding="utf-8")
        body_before = (vault_root / "Work" / "Plan.md").read_bytes()

        writer.save(hydrator.load())

        assert index_path.read_text(encoding="utf-8") == before
        assert (vault_root / "Work" / "Plan.md").read_bytes() == body_before


class TestIterMarkdownFiles:
    def test_skips_dot_entries_and_other_files(self, vault_root):
        _write(vault_root / "a.md", "")
        _write(vault_root / "B" / "c.MD", "")
        _write(vault_root / "B" / "attachments" / "img.png", "")
        _write(vault_root / ".git" / "x.md", "")
        _write(vault_root / ".hidden.md", "")
        assert list(iter_markdown_files(vault_root)) == ["a.md", "B/c.MD"]

    def test_deep_tree(self, vault_root):
        deep = vault_root
        for i in range(60):
            deep = deep / f"d{i}"
        _write(deep / "leaf.md", "")
        files = list(iter_markdown_files(vault_root))
        assert len(files) == 1
        assert files[0].endswith("d59/leaf.md")
