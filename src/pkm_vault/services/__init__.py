"""Service layer: backup scheduling and the public vault facade."""

from pkm_vault.services.backup_scheduler import BackupScheduler, BackupSettingsStore
from pkm_vault.services.vault_service import VaultService

__all__ = [
    "BackupScheduler",
    "BackupSettingsStore",
    "VaultService",
]
