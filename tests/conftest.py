from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from vault_backup.config import BackupConfig
from vault_backup.credentials import REQUIRED_ENV_VARS, SENSITIVE_ENV_VARS
from vault_backup.vault_cli import CommandResult


class FakeVaultClient:
    """In-memory stand-in for the bw CLI that records every call."""

    def __init__(
        self,
        login: Optional[CommandResult] = None,
        unlock: Optional[CommandResult] = None,
        export: Optional[CommandResult] = None,
        logout: Optional[CommandResult] = None,
        configure_server: Optional[CommandResult] = None,
        export_payload: Optional[bytes] = b'{"encrypted": true}',
    ) -> None:
        self.calls: List[Tuple[str, ...]] = []
        self._login = login or CommandResult(0, "login-token\n")
        self._unlock = unlock or CommandResult(0, "unlock-token\n")
        self._export = export or CommandResult(0)
        self._logout = logout or CommandResult(0)
        self._configure_server = configure_server or CommandResult(0)
        self._export_payload = export_payload

    def configure_server(self, url: str) -> CommandResult:
        self.calls.append(("configure_server", url))
        return self._configure_server

    def login(self, client_id: str, client_secret: str) -> CommandResult:
        self.calls.append(("login", client_id, client_secret))
        return self._login

    def unlock(self, token: str, password: str) -> CommandResult:
        self.calls.append(("unlock", token, password))
        return self._unlock

    def export(self, token: str, password: str, destination: Path) -> CommandResult:
        self.calls.append(("export", token, password, str(destination)))
        if self._export_payload is not None:
            destination.write_bytes(self._export_payload)
        return self._export

    def logout(self) -> CommandResult:
        self.calls.append(("logout",))
        return self._logout

    @property
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class FixedClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def fake_client():
    return FakeVaultClient()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 9, 14, 5, 7))


@pytest.fixture(autouse=True)
def clean_credential_env(monkeypatch):
    for name in SENSITIVE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("VAULT_BACKUP_ROOT", raising=False)
    monkeypatch.delenv("VAULT_BACKUP_CONFIG", raising=False)


@pytest.fixture
def credential_env(monkeypatch):
    values = dict(zip(REQUIRED_ENV_VARS, ("client-id", "client-secret", "master-password")))
    for name, value in values.items():
        monkeypatch.setenv(name, value)
    return values


@pytest.fixture
def backup_config(tmp_path):
    mount = tmp_path / "mount"
    mount.mkdir()
    return BackupConfig(
        backup_root=mount / "Backup" / "Passwords",
        mount_path=mount,
        retry_count=3,
        retry_delay=0,
        logging={"file": str(tmp_path / "backup.log")},
    )


@pytest.fixture
def client_factory():
    return FakeVaultClient


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
