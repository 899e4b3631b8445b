"""Public facade over the vault engine.

Wires storage and backup components together and enforces the contract that
nothing crosses this boundary as an exception: every operation returns its
result or a sentinel, with failures logged and recorded in ``diagnostics``.
"""

import logging
import threading
from typing import Any, Callable, List, Optional, TypeVar

from pkm_vault.config import PkmVaultConfig, config as default_config
from pkm_vault.exceptions import ErrorCode, VaultError
from pkm_vault.models.schema import (
    AttachmentResult,
    BackupState,
    CloneResult,
    NoteRecord,
)
from pkm_vault.observability import VaultDiagnostics, metrics, traced
from pkm_vault.services.backup_scheduler import (
    BackupPass,
    BackupScheduler,
    BackupSettingsStore,
)
from pkm_vault.storage.attachments import AttachmentManager
from pkm_vault.storage.git_wrapper import GitBackupRunner, GitWrapper
from pkm_vault.storage.hydrator import VaultHydrator
from pkm_vault.storage.index_store import IndexStore
from pkm_vault.storage.markdown_parser import MarkdownParser
from pkm_vault.storage.writer import VaultWriter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VaultService:
    """Entry point used by the application (and the CLI).

    Args:
        settings: Configuration; the process-wide ``config`` when None.
        backup_pass: Replaces the git backup pass, mainly for tests.
        diagnostics: Shared diagnostics channel; created when None.
    """

    def __init__(
        self,
        settings: Optional[PkmVaultConfig] = None,
        backup_pass: Optional[BackupPass] = None,
        diagnostics: Optional[VaultDiagnostics] = None,
    ) -> None:
        self.config = settings or default_config
        self.diagnostics = diagnostics or VaultDiagnostics()
        self.vault_root = self.config.get_vault_root()
        self._write_lock = threading.RLock()

        if backup_pass is None:
            git = GitWrapper(
                self.vault_root,
                git_binary=self.config.git_binary,
                timeout=self.config.git_timeout,
            )
            runner = GitBackupRunner(
                git, self.config.git_author_name, self.config.git_author_email
            )
            backup_pass = runner.run

        self.scheduler = BackupScheduler(
            backup_pass,
            BackupSettingsStore(
                self.config.get_backup_settings_path(),
                default_enabled=self.config.backup_enabled_default,
                diagnostics=self.diagnostics,
            ),
            debounce_seconds=self.config.backup_debounce_seconds,
        )

        parser = MarkdownParser(snippet_length=self.config.snippet_length)
        index_store = IndexStore(self.config.get_index_path(), self.diagnostics)
        self.hydrator = VaultHydrator(
            self.vault_root, index_store, parser=parser, diagnostics=self.diagnostics
        )
        self.writer = VaultWriter(
            self.vault_root,
            index_store,
            parser=parser,
            diagnostics=self.diagnostics,
            on_saved=self.scheduler.schedule,
        )
        self.attachments = AttachmentManager(
            self.vault_root,
            diagnostics=self.diagnostics,
            on_changed=self.scheduler.schedule,
        )

    # =========================================================================
    # Notes
    # =========================================================================

    def load(self) -> Optional[List[NoteRecord]]:
        """All notes in the vault, or None when the vault holds none."""
        return self._guard("load", None, self._load)

    def save(self, notes: Any) -> bool:
        """Persist ``notes`` as the complete vault contents."""
        return self._guard("save", False, self._save, notes)

    # =========================================================================
    # Attachments
    # =========================================================================

    def store_attachment(
        self, note_path: Any, file_name: Any, base64_data: Any
    ) -> Optional[AttachmentResult]:
        return self._guard(
            "store_attachment",
            None,
            self._store_attachment,
            note_path,
            file_name,
            base64_data,
        )

    def clone_attachment_links(
        self, source_path: Any, target_path: Any, markdown: Any
    ) -> CloneResult:
        """Copy linked local files for a duplicated note.

        On failure the Markdown comes back unchanged.
        """
        original = markdown if isinstance(markdown, str) else ""
        return self._guard(
            "clone_attachment_links",
            CloneResult(markdown=original, copied_count=0),
            self._clone_attachment_links,
            source_path,
            target_path,
            markdown,
        )

    # =========================================================================
    # Backups
    # =========================================================================

    def get_backup_status(self) -> BackupState:
        return self.scheduler.status()

    def set_backup_enabled(self, enabled: Any) -> BackupState:
        state = self._guard(
            "set_backup_enabled", None, self._set_backup_enabled, bool(enabled)
        )
        return state if state is not None else self.scheduler.status()

    def run_backup_now(self) -> BackupState:
        state = self._guard("run_backup_now", None, self._run_backup_now)
        return state if state is not None else self.scheduler.status()

    def get_metrics(self) -> dict:
        """Operation metrics summary plus per-operation detail."""
        return {"summary": metrics.get_summary(), "operations": metrics.get_metrics()}

    def shutdown(self) -> None:
        """Flush a pending backup so it is not lost on exit."""
        try:
            self.scheduler.shutdown()
        except Exception as e:
            logger.exception("Vault shutdown failed")
            self.diagnostics.report(ErrorCode.INTERNAL_ERROR, str(e), operation="shutdown")

    # =========================================================================
    # Traced implementations
    # =========================================================================

    @traced("load")
    def _load(self) -> Optional[List[NoteRecord]]:
        with self._write_lock:
            return self.hydrator.load()

    @traced("save")
    def _save(self, notes: Any) -> bool:
        with self._write_lock:
            return self.writer.save(notes)

    @traced("store_attachment")
    def _store_attachment(
        self, note_path: Any, file_name: Any, base64_data: Any
    ) -> Optional[AttachmentResult]:
        with self._write_lock:
            return self.attachments.store(note_path, file_name, base64_data)

    @traced("clone_attachment_links")
    def _clone_attachment_links(
        self, source_path: Any, target_path: Any, markdown: Any
    ) -> CloneResult:
        with self._write_lock:
            return self.attachments.clone_links(source_path, target_path, markdown)

    @traced("set_backup_enabled")
    def _set_backup_enabled(self, enabled: bool) -> BackupState:
        with self._write_lock:
            return self.scheduler.set_enabled(enabled)

    @traced("run_backup_now")
    def _run_backup_now(self) -> BackupState:
        return self.scheduler.run_now()

    def _guard(
        self, operation: str, fallback: T, func: Callable[..., T], *args: Any
    ) -> T:
        try:
            return func(*args)
        except VaultError as e:
            logger.error(f"{operation} failed: {e}")
            self.diagnostics.report_error(e, operation=operation)
        except Exception as e:
            logger.exception(f"Unexpected error during {operation}")
            self.diagnostics.report(ErrorCode.INTERNAL_ERROR, str(e), operation=operation)
        return fallback
