from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = "~/.config/vault-backup/config.yaml"
BACKUP_ROOT_ENV = "VAULT_BACKUP_ROOT"

DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024


class ConfigurationError(Exception):
    """Raised when the vault backup configuration is invalid."""


# --- Logging -----------------------------------------------------------------


class LoggingConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    level: str = "INFO"
    file: Path = Path("~/.bitwarden_backup.log")
    max_bytes: int = Field(default=DEFAULT_LOG_MAX_BYTES, gt=0)

    @field_validator("level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("file")
    @classmethod
    def _expand_file(cls, value: Path) -> Path:
        return value.expanduser()


class NotificationsConfig(BaseModel):
    slack_webhook_env: Optional[str] = None

    def resolve_slack_webhook(self) -> Optional[str]:
        if not self.slack_webhook_env:
            return None
        return os.getenv(self.slack_webhook_env) or None


# --- Backup configuration ----------------------------------------------------


class BackupConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    cli_path: str = "bw"
    server_url: Optional[str] = Field(default=None, description="Self-hosted vault URL.")
    backup_root: Path = Path("~/OneDrive/Backup/Passwords")
    mount_path: Optional[Path] = Field(
        default=Path("~/OneDrive"),
        description="Path that must be mounted and writable before the run; null disables the wait.",
    )
    retry_count: int = Field(default=30, ge=1)
    retry_delay: float = Field(default=4.0, ge=0)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    @field_validator("backup_root", "mount_path")
    @classmethod
    def _expand_paths(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return value.expanduser()

    @field_validator("cli_path")
    @classmethod
    def _require_cli_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("cli_path must not be empty.")
        return value

    @field_validator("server_url")
    @classmethod
    def _strip_server_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None


def load_config(path: Path) -> BackupConfig:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")

    return build_config(raw)


def build_config(raw: dict) -> BackupConfig:
    root_override = os.getenv(BACKUP_ROOT_ENV)
    if root_override:
        raw = {**raw, "backup_root": root_override}

    try:
        return BackupConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


def resolve_config(explicit_path: Optional[str]) -> BackupConfig:
    """Load the configuration named on the command line or in the environment.

    Only an explicitly named file has to exist; when the default location is
    absent the built-in defaults apply.
    """
    named = explicit_path or os.getenv("VAULT_BACKUP_CONFIG")
    if named:
        return load_config(Path(named).expanduser())

    default_path = Path(DEFAULT_CONFIG_PATH).expanduser()
    if default_path.exists():
        return load_config(default_path)
    return build_config({})
