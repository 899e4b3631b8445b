"""Full-vault saves.

A save receives the complete note list, writes every body, replaces the
index, and removes files belonging to notes that disappeared from the list.
The index is committed before any cleanup, so cleanup failures are only
reported: the index is the source of truth from then on.
"""
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError

from pkm_vault.exceptions import ErrorCode, StorageError
from pkm_vault.models.schema import (
    DEFAULT_MARKDOWN,
    NoteInput,
    NoteRecord,
    generate_id,
    utc_now,
)
from pkm_vault.observability import VaultDiagnostics
from pkm_vault.storage.hydrator import read_markdown
from pkm_vault.storage.index_store import IndexStore
from pkm_vault.storage.markdown_parser import MarkdownParser
from pkm_vault.storage.paths import (
    notebook_from_path,
    resolve_in_vault,
    sanitize_note_path,
    unique_relative_path,
)

logger = logging.getLogger(__name__)

SAVE_REASON = "notes-save"


def write_if_changed(path: Path, content: str) -> bool:
    """Write ``content`` unless the file already holds exactly that.

    Returns True if the file was written.
    """
    try:
        if path.is_file() and read_markdown(path) == content:
            return False
    except (OSError, UnicodeDecodeError):
        pass
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    return True


def prune_empty_dirs(start: Path, stop: Path) -> int:
    """Remove empty directories from ``start`` upwards, stopping at ``stop``.

    ``stop`` itself is never removed. Returns the number of directories
    removed.
    """
    removed = 0
    current = start
    stop = stop.resolve()
    while True:
        resolved = current.resolve()
        if resolved == stop or stop not in resolved.parents:
            return removed
        try:
            if any(current.iterdir()):
                return removed
            current.rmdir()
            removed += 1
        except FileNotFoundError:
            pass
        current = current.parent


class VaultWriter:
    """Persists the full note list to disk and the index.

    Args:
        vault_root: Vault root directory.
        index_store: Sidecar index store.
        parser: Metadata derivation rules.
        diagnostics: Channel for tolerated failures.
        on_saved: Called with ``"notes-save"`` after a successful save;
            normally the backup scheduler's ``schedule``.
    """

    def __init__(
        self,
        vault_root: Path,
        index_store: IndexStore,
        parser: Optional[MarkdownParser] = None,
        diagnostics: Optional[VaultDiagnostics] = None,
        on_saved: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.vault_root = vault_root
        self.index_store = index_store
        self.parser = parser or MarkdownParser()
        self._diagnostics = diagnostics or VaultDiagnostics()
        self._on_saved = on_saved

    def save(self, notes: Any) -> bool:
        """Write ``notes`` as the complete vault contents.

        Returns False only if ``notes`` is not a list. Malformed items are
        skipped.

        Raises:
            StorageError: If a note body or the index cannot be written.
        """
        if not isinstance(notes, (list, tuple)):
            self._diagnostics.report(
                ErrorCode.NOTE_PAYLOAD_INVALID,
                f"Save payload must be a list, got {type(notes).__name__}",
                operation="save",
            )
            return False

        self.vault_root.mkdir(parents=True, exist_ok=True)

        previous_by_lower: Dict[str, str] = {}
        for entry in self.index_store.read():
            relative = sanitize_note_path(entry.path)
            previous_by_lower[relative.lower()] = relative

        used: Set[str] = set()
        records: List[NoteRecord] = []
        written = 0
        for position, raw in enumerate(notes):
            note_input = self._coerce(raw, position)
            if note_input is None:
                continue

            relative_path = unique_relative_path(sanitize_note_path(note_input.path), used)
            record = self._build_record(note_input, relative_path)
            absolute_path = resolve_in_vault(self.vault_root, relative_path)
            try:
                if write_if_changed(absolute_path, record.markdown):
                    written += 1
            except OSError as e:
                raise StorageError(
                    "Failed to write note",
                    operation="save",
                    path=relative_path,
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

            self._remove_case_variant(previous_by_lower.get(relative_path.lower()), relative_path)
            records.append(record)

        self.index_store.write(records)

        next_paths = {record.path.lower() for record in records}
        removed = [
            previous_by_lower[lower]
            for lower in previous_by_lower
            if lower not in next_paths
        ]
        for relative in removed:
            self._remove_note_file(relative)

        logger.info(
            f"Saved {len(records)} notes ({written} written, {len(removed)} removed)"
        )

        if self._on_saved is not None:
            self._on_saved(SAVE_REASON)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _coerce(self, raw: Any, position: int) -> Optional[NoteInput]:
        if isinstance(raw, NoteRecord):
            raw = raw.model_dump()
        if not isinstance(raw, Mapping):
            self._diagnostics.report(
                ErrorCode.NOTE_ENTRY_SKIPPED,
                f"Note #{position} is not an object",
                operation="save",
            )
            return None
        try:
            return NoteInput.model_validate(raw)
        except ValidationError as e:
            self._diagnostics.report(
                ErrorCode.NOTE_ENTRY_SKIPPED,
                f"Note #{position} failed validation: {e.error_count()} error(s)",
                operation="save",
            )
            return None

    def _build_record(self, note: NoteInput, relative_path: str) -> NoteRecord:
        markdown = note.markdown if note.markdown is not None else DEFAULT_MARKDOWN
        meta = self.parser.merge(
            markdown,
            title=note.title,
            snippet=note.snippet,
            tags=note.tags,
            links_out=note.links_out,
        )
        now = utc_now()
        return NoteRecord(
            id=note.id or generate_id(),
            path=relative_path,
            title=meta.title,
            snippet=meta.snippet,
            tags=meta.tags,
            links_out=meta.links_out,
            created_at=note.created_at or now,
            updated_at=note.updated_at or now,
            notebook=notebook_from_path(relative_path, note.notebook),
            is_template=note.is_template,
            markdown=markdown,
        )

    def _remove_case_variant(self, previous: Optional[str], current: str) -> None:
        """Drop the old file when a note was renamed only by letter case.

        On case-insensitive file systems both names are the same file and
        nothing is removed.
        """
        if previous is None or previous == current:
            return
        old_path = resolve_in_vault(self.vault_root, previous)
        new_path = resolve_in_vault(self.vault_root, current)
        try:
            if old_path.exists() and not os.path.samefile(old_path, new_path):
                old_path.unlink()
        except OSError as e:
            self._diagnostics.report(
                ErrorCode.STORAGE_DELETE_FAILED, str(e), operation="save", path=previous
            )

    def _remove_note_file(self, relative: str) -> None:
        absolute_path = resolve_in_vault(self.vault_root, relative)
        try:
            absolute_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self._diagnostics.report(
                ErrorCode.STORAGE_DELETE_FAILED, str(e), operation="save", path=relative
            )
            return

        try:
            prune_empty_dirs(absolute_path.parent, self.vault_root)
        except OSError as e:
            self._diagnostics.report(
                ErrorCode.STORAGE_PRUNE_FAILED, str(e), operation="save", path=relative
            )
