"""Configuration module for the vault engine."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives next to the app data
_USER_ENV = Path.home() / ".pkm-vault" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class PkmVaultConfig(BaseModel):
    """Configuration for the vault engine."""

    # App-data directory; the vault and the backup settings live under it
    app_data_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("PKM_VAULT_APP_DATA_DIR", str(Path.home() / ".pkm-vault"))
        )
    )
    vault_dir_name: str = Field(
        default_factory=lambda: os.getenv("PKM_VAULT_DIR_NAME", "vault")
    )
    # Sidecar files
    index_file_name: str = Field(default=".vault-index.json")
    backup_settings_file_name: str = Field(default=".vault-git-backup.json")
    # Backup configuration
    # Only used when the settings file does not exist yet
    backup_enabled_default: bool = Field(
        default_factory=lambda: _env_bool("PKM_VAULT_BACKUP_ENABLED", "true")
    )
    backup_debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PKM_VAULT_BACKUP_DEBOUNCE", "4.0"))
    )
    git_binary: str = Field(
        default_factory=lambda: os.getenv("PKM_VAULT_GIT_BINARY", "git")
    )
    # Per git invocation; a hung process must not stall later backups
    git_timeout: float = Field(
        default_factory=lambda: float(os.getenv("PKM_VAULT_GIT_TIMEOUT", "60"))
    )
    git_author_name: str = Field(
        default_factory=lambda: os.getenv("PKM_VAULT_GIT_AUTHOR_NAME", "pkm-vault")
    )
    git_author_email: str = Field(
        default_factory=lambda: os.getenv(
            "PKM_VAULT_GIT_AUTHOR_EMAIL", "pkm-vault@localhost"
        )
    )
    # Derived preview length for note snippets
    snippet_length: int = Field(default=160)
    # Logging
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("PKM_VAULT_LOG_DIR"))
            if os.getenv("PKM_VAULT_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_settings(self) -> "PkmVaultConfig":
        """Validate numeric settings and the vault directory name."""
        if self.backup_debounce_seconds < 0:
            raise ValueError("backup_debounce_seconds must be >= 0")
        if self.git_timeout <= 0:
            raise ValueError("git_timeout must be > 0")
        if self.snippet_length < 1:
            raise ValueError("snippet_length must be >= 1")
        name = self.vault_dir_name.strip()
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ValueError("vault_dir_name must be a single directory name")
        return self

    def get_vault_root(self) -> Path:
        """Absolute path of the vault root directory."""
        return self.app_data_dir.expanduser() / self.vault_dir_name

    def get_index_path(self) -> Path:
        """Path of the sidecar index file (inside the vault root)."""
        return self.get_vault_root() / self.index_file_name

    def get_backup_settings_path(self) -> Path:
        """Path of the backup settings file (beside the vault, in app data)."""
        return self.app_data_dir.expanduser() / self.backup_settings_file_name

    def get_log_dir(self) -> Path:
        """Directory for rotating log files."""
        if self.log_dir is not None:
            return self.log_dir.expanduser()
        return self.app_data_dir.expanduser() / "logs"


# Create a global config instance
config = PkmVaultConfig()
