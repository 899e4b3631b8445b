"""Storage layer: vault files, the sidecar index, attachments, and git."""

from pkm_vault.storage.attachments import AttachmentManager
from pkm_vault.storage.hydrator import VaultHydrator
from pkm_vault.storage.index_store import IndexStore
from pkm_vault.storage.writer import VaultWriter

__all__ = [
    "AttachmentManager",
    "IndexStore",
    "VaultHydrator",
    "VaultWriter",
]
