"""Debounced, single-flight vault backups.

Every vault mutation calls ``schedule(reason)``. Bursts of calls collapse
into one backup pass after a quiet period; a request that arrives while a
pass is running yields exactly one trailing pass.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from pkm_vault.exceptions import ErrorCode, StorageError
from pkm_vault.models.schema import BackupSettings, BackupState
from pkm_vault.observability import VaultDiagnostics
from pkm_vault.storage.git_wrapper import BackupOutcome

logger = logging.getLogger(__name__)

DEFAULT_REASON = "scheduled"
MANUAL_REASON = "manual"
ENABLED_REASON = "enabled"

BackupPass = Callable[[str], BackupOutcome]


class BackupSettingsStore:
    """Persists the backup toggle as ``{"enabled": bool}``.

    A missing or unreadable file yields the default; the unreadable case
    is reported.
    """

    def __init__(
        self,
        settings_path: Path,
        default_enabled: bool = True,
        diagnostics: Optional[VaultDiagnostics] = None,
    ) -> None:
        self.settings_path = settings_path
        self.default_enabled = default_enabled
        self._diagnostics = diagnostics or VaultDiagnostics()

    def load(self) -> BackupSettings:
        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return BackupSettings.model_validate(data)
        except FileNotFoundError:
            return BackupSettings(enabled=self.default_enabled)
        except (OSError, UnicodeDecodeError, ValueError, ValidationError) as e:
            self._diagnostics.report(
                ErrorCode.BACKUP_SETTINGS_INVALID,
                f"Backup settings unreadable, using default: {e}",
                operation="load_backup_settings",
                path=self.settings_path.name,
            )
            return BackupSettings(enabled=self.default_enabled)

    def save(self, settings: BackupSettings) -> None:
        """Write the settings file.

        Raises:
            StorageError: If the file cannot be written.
        """
        temp_path = self.settings_path.with_name(self.settings_path.name + ".tmp")
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(settings.model_dump(), f, indent=2)
            os.replace(temp_path, self.settings_path)
        except OSError as e:
            raise StorageError(
                "Failed to write backup settings",
                operation="save_backup_settings",
                path=self.settings_path.name,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e


class BackupScheduler:
    """Coalesces backup requests and runs at most one pass at a time.

    Args:
        backup_pass: Runs one backup for a reason; normally
            ``GitBackupRunner.run``. Expected not to raise.
        settings_store: Source and sink of the enabled toggle.
        debounce_seconds: Quiet period before a scheduled pass starts.
    """

    def __init__(
        self,
        backup_pass: BackupPass,
        settings_store: BackupSettingsStore,
        debounce_seconds: float = 4.0,
    ) -> None:
        self._backup_pass = backup_pass
        self._settings_store = settings_store
        self._debounce_seconds = debounce_seconds
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._closed = False

        self._enabled = settings_store.load().enabled
        self._pending = False
        self._reason: Optional[str] = None
        self._busy = False

        self._available: Optional[bool] = None
        self._repo_ready = False
        self._dirty = False
        self._last_reason: Optional[str] = None
        self._last_run_at = None
        self._last_commit_at = None
        self._last_commit_hash: Optional[str] = None
        self._last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def schedule(self, reason: str) -> None:
        """Request a backup after the debounce window. No-op when disabled.

        Each call restarts the window; the latest reason wins.
        """
        with self._lock:
            if self._closed or not self._enabled:
                return
            self._pending = True
            self._reason = reason
            self._cancel_timer_locked()
            timer = threading.Timer(self._debounce_seconds, self._on_timer)
            timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug(f"Backup scheduled ({reason}) in {self._debounce_seconds}s")

    def flush(self, reason: Optional[str] = None) -> BackupState:
        """Run pending work now and return the resulting state.

        An explicit ``reason`` counts as a new request. If a pass is already
        running the request is queued for it and the call returns at once.
        """
        with self._lock:
            if reason is not None:
                self._cancel_timer_locked()
                self._pending = True
                self._reason = reason
            if self._busy:
                self._pending = True
                return self._snapshot_locked()
            if not self._pending:
                return self._snapshot_locked()
            self._busy = True

        try:
            self._drain()
        except BaseException:
            with self._lock:
                self._busy = False
            raise
        return self.status()

    def run_now(self, reason: str = MANUAL_REASON) -> BackupState:
        """Back up immediately, whether or not scheduled backups are enabled."""
        return self.flush(reason)

    def set_enabled(self, enabled: bool) -> BackupState:
        """Persist the toggle.

        Disabling drops a queued request; enabling schedules a pass.

        Raises:
            StorageError: If the settings file cannot be written.
        """
        self._settings_store.save(BackupSettings(enabled=enabled))
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self._cancel_timer_locked()
                self._pending = False
                self._reason = None
        logger.info(f"Vault backups {'enabled' if enabled else 'disabled'}")
        if enabled:
            self.schedule(ENABLED_REASON)
        return self.status()

    def status(self) -> BackupState:
        with self._lock:
            return self._snapshot_locked()

    def shutdown(self) -> None:
        """Stop the timer and run a still-pending request synchronously."""
        with self._lock:
            self._closed = True
            self._cancel_timer_locked()
            pending = self._pending
        if pending:
            logger.info("Flushing pending vault backup on shutdown")
            self.flush()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _drain(self) -> None:
        # Caller holds the busy flag; it is released under the same lock
        # that sees the queue empty
        while True:
            with self._lock:
                if not self._pending:
                    self._busy = False
                    return
                self._pending = False
                self._cancel_timer_locked()
                run_reason = self._reason or DEFAULT_REASON
                self._reason = None
                self._last_reason = run_reason
            self._run_pass(run_reason)

    def _run_pass(self, reason: str) -> None:
        try:
            outcome = self._backup_pass(reason)
        except Exception as e:
            logger.exception(f"Backup pass raised ({reason})")
            with self._lock:
                self._last_error = str(e)
            return
        with self._lock:
            self._apply_locked(outcome)

    def _apply_locked(self, outcome: BackupOutcome) -> None:
        self._available = outcome.available
        self._last_run_at = outcome.ran_at
        if not outcome.available:
            return
        self._repo_ready = outcome.repo_ready
        self._dirty = outcome.dirty
        self._last_error = outcome.error
        if outcome.committed:
            self._last_commit_at = outcome.ran_at
            if outcome.commit_hash:
                self._last_commit_hash = outcome.commit_hash

    def _on_timer(self) -> None:
        with self._lock:
            if self._timer is not None and self._timer is not threading.current_thread():
                # Superseded by a newer schedule()
                return
            self._timer = None
        self.flush()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _snapshot_locked(self) -> BackupState:
        return BackupState(
            enabled=self._enabled,
            available=self._available,
            repo_ready=self._repo_ready,
            dirty=self._dirty,
            busy=self._busy,
            pending=self._pending,
            last_reason=self._last_reason,
            last_run_at=self._last_run_at,
            last_commit_at=self._last_commit_at,
            last_commit_hash=self._last_commit_hash,
            last_error=self._last_error,
        )
