"""Common test fixtures for the vault engine."""

import pytest

from pkm_vault.config import PkmVaultConfig
from pkm_vault.observability import VaultDiagnostics, metrics
from pkm_vault.services.backup_scheduler import BackupScheduler, BackupSettingsStore
from pkm_vault.services.vault_service import VaultService
from pkm_vault.storage.attachments import AttachmentManager
from pkm_vault.storage.hydrator import VaultHydrator
from pkm_vault.storage.index_store import IndexStore
from pkm_vault.storage.markdown_parser import MarkdownParser
from pkm_vault.storage.writer import VaultWriter
from tests.fakes import FakeBackupPass


class TriggerRecorder:
    """Collects backup reasons passed to an ``on_saved``/``on_changed`` hook."""

    def __init__(self):
        self.reasons = []

    def __call__(self, reason):
        self.reasons.append(reason)


@pytest.fixture
def vault_root(tmp_path):
    """Empty vault directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def diagnostics():
    return VaultDiagnostics()


@pytest.fixture
def parser():
    return MarkdownParser()


@pytest.fixture
def index_store(vault_root, diagnostics):
    return IndexStore(vault_root / ".vault-index.json", diagnostics)


@pytest.fixture
def trigger():
    return TriggerRecorder()


@pytest.fixture
def hydrator(vault_root, index_store, parser, diagnostics):
    return VaultHydrator(vault_root, index_store, parser=parser, diagnostics=diagnostics)


@pytest.fixture
def writer(vault_root, index_store, parser, diagnostics, trigger):
    return VaultWriter(
        vault_root,
        index_store,
        parser=parser,
        diagnostics=diagnostics,
        on_saved=trigger,
    )


@pytest.fixture
def attachments(vault_root, diagnostics, trigger):
    return AttachmentManager(vault_root, diagnostics=diagnostics, on_changed=trigger)


@pytest.fixture
def settings_store(tmp_path, diagnostics):
    return BackupSettingsStore(tmp_path / ".vault-git-backup.json", diagnostics=diagnostics)


@pytest.fixture
def backup_pass():
    return FakeBackupPass()


@pytest.fixture
def scheduler(backup_pass, settings_store):
    """Scheduler with a debounce long enough that only explicit flushes run."""
    sched = BackupScheduler(backup_pass, settings_store, debounce_seconds=30.0)
    yield sched
    sched.shutdown()


@pytest.fixture
def test_config(tmp_path):
    """Configuration rooted in a temporary app-data directory."""
    return PkmVaultConfig(
        app_data_dir=tmp_path / "app",
        backup_enabled_default=True,
        backup_debounce_seconds=30.0,
    )


@pytest.fixture
def vault_service(test_config, backup_pass):
    """VaultService wired to a fake backup pass."""
    service = VaultService(test_config, backup_pass=backup_pass)
    yield service
    service.shutdown()


@pytest.fixture
def clean_metrics():
    """Reset the global metrics collector around a test."""
    metrics.reset()
    yield metrics
    metrics.reset()
