"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pkm_vault.config import PkmVaultConfig


class TestConfigDefaults:
    def test_paths_derive_from_app_data(self, tmp_path):
        cfg = PkmVaultConfig(app_data_dir=tmp_path)
        assert cfg.get_vault_root() == tmp_path / "vault"
        assert cfg.get_index_path() == tmp_path / "vault" / ".vault-index.json"
        assert cfg.get_backup_settings_path() == tmp_path / ".vault-git-backup.json"
        assert cfg.get_log_dir() == tmp_path / "logs"

    def test_home_is_expanded(self):
        cfg = PkmVaultConfig(app_data_dir=Path("~/somewhere"))
        assert cfg.get_vault_root() == Path.home() / "somewhere" / "vault"

    def test_explicit_log_dir(self, tmp_path):
        cfg = PkmVaultConfig(app_data_dir=tmp_path, log_dir=tmp_path / "elsewhere")
        assert cfg.get_log_dir() == tmp_path / "elsewhere"


class TestConfigFromEnvironment:
    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PKM_VAULT_APP_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PKM_VAULT_DIR_NAME", "notes")
        monkeypatch.setenv("PKM_VAULT_BACKUP_ENABLED", "false")
        monkeypatch.setenv("PKM_VAULT_BACKUP_DEBOUNCE", "1.5")
        monkeypatch.setenv("PKM_VAULT_GIT_TIMEOUT", "10")
        monkeypatch.setenv("PKM_VAULT_GIT_BINARY", "/usr/local/bin/git")

        cfg = PkmVaultConfig()

        assert cfg.get_vault_root() == tmp_path / "notes"
        assert cfg.backup_enabled_default is False
        assert cfg.backup_debounce_seconds == 1.5
        assert cfg.git_timeout == 10
        assert cfg.git_binary == "/usr/local/bin/git"

    @pytest.mark.parametrize("value", ["true", "1", "YES"])
    def test_truthy_backup_flag(self, monkeypatch, value):
        monkeypatch.setenv("PKM_VAULT_BACKUP_ENABLED", value)
        assert PkmVaultConfig().backup_enabled_default is True


class TestConfigValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"backup_debounce_seconds": -1},
            {"git_timeout": 0},
            {"snippet_length": 0},
            {"vault_dir_name": ""},
            {"vault_dir_name": ".."},
            {"vault_dir_name": "a/b"},
        ],
    )
    def test_rejects_invalid_values(self, tmp_path, overrides):
        with pytest.raises(ValidationError):
            PkmVaultConfig(app_data_dir=tmp_path, **overrides)
