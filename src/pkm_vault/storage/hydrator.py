"""Vault hydration: turning the index plus Markdown files back into notes.

Two tiers. The index supplies metadata quickly; the Markdown files on disk
are the ground truth of what notes exist. If the index yields nothing
usable, the vault directory is scanned and everything is derived from the
files themselves.
"""
import datetime
import logging
import os
from datetime import timezone
from pathlib import Path
from typing import Iterator, List, Optional

from pkm_vault.exceptions import ErrorCode
from pkm_vault.models.schema import IndexEntry, NoteRecord, generate_id, utc_now
from pkm_vault.observability import VaultDiagnostics
from pkm_vault.storage.index_store import IndexStore
from pkm_vault.storage.markdown_parser import MarkdownParser
from pkm_vault.storage.paths import (
    notebook_from_path,
    resolve_in_vault,
    sanitize_note_path,
)

logger = logging.getLogger(__name__)


def read_markdown(path: Path) -> str:
    """Read a note body as UTF-8 text, preserving line endings."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def iter_markdown_files(root: Path) -> Iterator[str]:
    """Yield vault-relative paths of every ``*.md`` file under ``root``.

    Dot-files and dot-directories (``.git``, the index) are skipped.
    Uses an explicit stack so deep trees cannot hit the recursion limit.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {current}: {e}")
            continue
        subdirs = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
            elif entry.is_file() and entry.name.lower().endswith(".md"):
                yield Path(entry.path).relative_to(root).as_posix()
        # Reversed so directories pop in name order
        stack.extend(reversed(subdirs))


def _file_times(stat_result: os.stat_result) -> tuple:
    modified = datetime.datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)
    birth = getattr(stat_result, "st_birthtime", None)
    created = (
        datetime.datetime.fromtimestamp(birth, tz=timezone.utc)
        if birth
        else modified
    )
    return created, modified


class VaultHydrator:
    """Loads notes from the vault at startup.

    Args:
        vault_root: Vault root directory.
        index_store: Sidecar index reader.
        parser: Metadata derivation rules.
        diagnostics: Channel for tolerated failures.
    """

    def __init__(
        self,
        vault_root: Path,
        index_store: IndexStore,
        parser: Optional[MarkdownParser] = None,
        diagnostics: Optional[VaultDiagnostics] = None,
    ) -> None:
        self.vault_root = vault_root
        self.index_store = index_store
        self.parser = parser or MarkdownParser()
        self._diagnostics = diagnostics or VaultDiagnostics()

    def load(self) -> Optional[List[NoteRecord]]:
        """Return the vault's notes, or None when there is nothing usable."""
        self.vault_root.mkdir(parents=True, exist_ok=True)

        entries = self.index_store.read()
        if entries:
            notes = self.hydrate_from_index(entries)
            if notes:
                logger.info(f"Hydrated {len(notes)} notes from index")
                return notes
            logger.info("Index produced no usable notes, scanning vault")

        notes = self.hydrate_from_files()
        if notes:
            logger.info(f"Hydrated {len(notes)} notes from Markdown scan")
            return notes

        return None

    def hydrate_from_index(self, entries: List[IndexEntry]) -> List[NoteRecord]:
        """Merge index metadata with the bodies of files that still exist."""
        notes: List[NoteRecord] = []
        for entry in entries:
            relative_path = sanitize_note_path(entry.path)
            absolute_path = resolve_in_vault(self.vault_root, relative_path)
            if not absolute_path.is_file():
                self._diagnostics.report(
                    ErrorCode.INDEX_STALE_ENTRY,
                    "Indexed note has no file on disk",
                    operation="load",
                    path=relative_path,
                )
                continue

            try:
                markdown = read_markdown(absolute_path)
            except (OSError, UnicodeDecodeError) as e:
                self._diagnostics.report(
                    ErrorCode.NOTE_UNREADABLE, str(e), operation="load", path=relative_path
                )
                continue

            meta = self.parser.merge(
                markdown,
                title=entry.title,
                snippet=entry.snippet,
                tags=entry.tags,
                links_out=entry.links_out,
            )
            now = utc_now()
            notes.append(
                NoteRecord(
                    id=entry.id or generate_id(),
                    path=relative_path,
                    title=meta.title,
                    snippet=meta.snippet,
                    tags=meta.tags,
                    links_out=meta.links_out,
                    created_at=entry.created_at or now,
                    updated_at=entry.updated_at or now,
                    notebook=notebook_from_path(relative_path, entry.notebook),
                    is_template=entry.is_template,
                    markdown=markdown,
                )
            )
        return notes

    def hydrate_from_files(self) -> List[NoteRecord]:
        """Derive every note from the Markdown files on disk."""
        notes: List[NoteRecord] = []
        for relative_path in iter_markdown_files(self.vault_root):
            absolute_path = resolve_in_vault(self.vault_root, relative_path)
            try:
                markdown = read_markdown(absolute_path)
                created_at, updated_at = _file_times(absolute_path.stat())
            except (OSError, UnicodeDecodeError) as e:
                self._diagnostics.report(
                    ErrorCode.NOTE_UNREADABLE, str(e), operation="load", path=relative_path
                )
                continue

            meta = self.parser.derive(markdown)
            notes.append(
                NoteRecord(
                    path=relative_path,
                    title=meta.title,
                    snippet=meta.snippet,
                    tags=meta.tags,
                    links_out=meta.links_out,
                    created_at=created_at,
                    updated_at=updated_at,
                    notebook=notebook_from_path(relative_path),
                    is_template=False,
                    markdown=markdown,
                )
            )
        return notes
