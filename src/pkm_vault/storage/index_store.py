"""Sidecar index persistence.

The index is a JSON array of note metadata records kept at the vault root.
It is a cache, never a single point of failure: any problem reading it
degrades to an empty list and the hydrator falls back to scanning files.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from pkm_vault.exceptions import ErrorCode, IndexCorruptedError, StorageError
from pkm_vault.models.schema import IndexEntry
from pkm_vault.observability import VaultDiagnostics

logger = logging.getLogger(__name__)


class IndexStore:
    """Reads and writes the sidecar index file.

    Args:
        index_path: Location of the index (``<vault>/.vault-index.json``).
        diagnostics: Channel for tolerated failures.
    """

    def __init__(
        self, index_path: Path, diagnostics: Optional[VaultDiagnostics] = None
    ) -> None:
        self.index_path = index_path
        self._diagnostics = diagnostics or VaultDiagnostics()

    def read(self) -> List[IndexEntry]:
        """Load and validate the index.

        Returns an empty list when the file is missing (first run) or
        unusable (reported). Entries failing the schema are dropped
        individually and reported; valid siblings are kept.
        """
        try:
            raw_entries = self._load_raw()
        except IndexCorruptedError as e:
            self._diagnostics.report_error(e, operation="read_index")
            return []

        entries: List[IndexEntry] = []
        for position, raw in enumerate(raw_entries):
            entry = self._validate_entry(raw, position)
            if entry is not None:
                entries.append(entry)
        return entries

    def write(self, entries: Iterable[Any]) -> None:
        """Replace the index with ``entries``.

        Accepts IndexEntry models or plain mappings. The file is written
        to a temporary sibling and moved over the old one so a crash
        mid-write never leaves a truncated index.

        Raises:
            StorageError: If the file cannot be written.
        """
        payload = [self._to_json(entry) for entry in entries]
        temp_path = self.index_path.with_name(self.index_path.name + ".tmp")
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.index_path)
        except OSError as e:
            raise StorageError(
                "Failed to write vault index",
                operation="write_index",
                path=self.index_path.name,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Wrote {len(payload)} index entries to {self.index_path}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load_raw(self) -> List[Any]:
        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise IndexCorruptedError(
                "Vault index is unreadable", path=self.index_path.name, original_error=e
            ) from e

        if not isinstance(data, list):
            raise IndexCorruptedError(
                f"Vault index must be a JSON array, got {type(data).__name__}",
                path=self.index_path.name,
            )
        return data

    def _validate_entry(self, raw: Any, position: int) -> Optional[IndexEntry]:
        if not isinstance(raw, Mapping):
            self._diagnostics.report(
                ErrorCode.INDEX_ENTRY_REJECTED,
                f"Index entry #{position} is not an object",
                operation="read_index",
            )
            return None
        try:
            return IndexEntry.model_validate(raw)
        except ValidationError as e:
            path = raw.get("path") if isinstance(raw.get("path"), str) else None
            self._diagnostics.report(
                ErrorCode.INDEX_ENTRY_REJECTED,
                f"Index entry #{position} failed validation: {e.error_count()} error(s)",
                operation="read_index",
                path=path,
            )
            return None

    @staticmethod
    def _to_json(entry: Any) -> Any:
        if isinstance(entry, IndexEntry):
            return entry.model_dump(mode="json", by_alias=True)
        if hasattr(entry, "to_index_entry"):
            return entry.to_index_entry()
        return dict(entry)
