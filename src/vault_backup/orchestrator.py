from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from .config import BackupConfig
from .credentials import CredentialSource, Credentials, scrub_environment
from .mount import wait_for_mount
from .storage import BackupStorage, StorageError, human_size
from .vault_cli import CommandResult, VaultClient, VaultCommandError, check_dependency

LOG = logging.getLogger(__name__)


@dataclass
class BackupResult:
    artifact_path: Path
    size_bytes: int
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@contextmanager
def scrubbed_environment() -> Iterator[None]:
    """Remove every credential and session variable from ``os.environ`` on exit."""
    try:
        yield
    finally:
        scrub_environment()


class BackupOrchestrator:
    """Runs one encrypted vault export from dependency check to cleanup.

    Steps up to the export raise and abort the run. Logout is best effort and
    credentials are cleared on every exit path.
    """

    def __init__(
        self,
        config: BackupConfig,
        client: VaultClient,
        storage: Optional[BackupStorage] = None,
        *,
        wait_for_mount: bool = True,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
        dependency_check: Callable[[str], str] = check_dependency,
    ) -> None:
        self._config = config
        self._client = client
        self._storage = storage or BackupStorage(config.backup_root)
        self._wait_for_mount = wait_for_mount
        self._clock = clock
        self._sleep = sleep
        self._dependency_check = dependency_check

    def run(self, credential_source: CredentialSource) -> BackupResult:
        LOG.info("=== Starting Bitwarden backup process ===")
        with scrubbed_environment():
            self._check_dependencies()
            with credential_source.load() as credentials:
                self._await_storage()

                started_at = self._clock()
                run_dir = self._storage.prepare_run(started_at)
                destination = self._storage.artifact_path(run_dir, started_at)
                if destination.exists():
                    raise StorageError(f"Backup file already exists: {destination}")

                with self._vault_session(credentials) as token:
                    self._export(token, credentials, destination)

        size = destination.stat().st_size
        LOG.info("=== Backup process completed successfully ===")
        return BackupResult(
            artifact_path=destination,
            size_bytes=size,
            started_at=started_at,
            completed_at=self._clock(),
        )

    # Steps -----------------------------------------------------------------
    def _check_dependencies(self) -> None:
        LOG.info("Checking dependencies...")
        resolved = self._dependency_check(self._config.cli_path)
        LOG.info("All dependencies satisfied (%s)", resolved)

    def _await_storage(self) -> None:
        mount_path = self._config.mount_path
        if not self._wait_for_mount or mount_path is None:
            return
        wait_for_mount(
            mount_path,
            self._config.backup_root,
            attempts=self._config.retry_count,
            delay=self._config.retry_delay,
            sleep=self._sleep,
        )

    @contextmanager
    def _vault_session(self, credentials: Credentials) -> Iterator[str]:
        # A stale session from an earlier run would make login fail.
        self._client.logout()

        if self._config.server_url:
            LOG.info("Configuring Bitwarden CLI for server: %s", self._config.server_url)
            self._require(self._client.configure_server(self._config.server_url), "Failed to configure server URL")

        try:
            LOG.info("Logging into Bitwarden...")
            result = self._client.login(credentials.client_id, credentials.client_secret)
            token = self._require_token(result, "Failed to login to Bitwarden")
            LOG.info("Successfully logged into Bitwarden")

            LOG.info("Unlocking vault...")
            result = self._client.unlock(token, credentials.master_password)
            token = self._require_token(result, "Failed to unlock vault, check the master password")
            LOG.info("Vault unlocked successfully")

            yield token
        finally:
            self._logout()

    def _export(self, token: str, credentials: Credentials, destination: Path) -> None:
        LOG.info("Creating encrypted backup...")
        completed = False
        result: Optional[CommandResult] = None
        try:
            try:
                result = self._client.export(token, credentials.master_password, destination)
                completed = result.ok and destination.is_file()
            except FileExistsError:
                # Someone else's file; never discard it.
                completed = True
                raise
            finally:
                if not completed:
                    self._storage.discard(destination)
        except FileExistsError as exc:
            raise StorageError(f"Backup file already exists: {destination}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to write backup {destination}: {exc}") from exc

        if not completed:
            self._log_stderr(result)
            raise VaultCommandError("Failed to create backup", result)

        LOG.info("Backup created successfully: %s", destination)
        LOG.info("File size: %s", human_size(destination.stat().st_size))

    def _logout(self) -> None:
        LOG.info("Logging out from Bitwarden...")
        try:
            result = self._client.logout()
        except Exception as exc:  # noqa: BLE001
            LOG.warning("Logout failed: %s", exc)
            return
        if not result.ok:
            LOG.warning("Logout returned exit code %s: %s", result.returncode, result.stderr.strip())

    # Internal helpers ------------------------------------------------------
    def _require(self, result: CommandResult, message: str) -> CommandResult:
        if not result.ok:
            self._log_stderr(result)
            raise VaultCommandError(message, result)
        return result

    def _require_token(self, result: CommandResult, message: str) -> str:
        self._require(result, message)
        if not result.token:
            raise VaultCommandError(f"{message} (no session token returned)", result)
        return result.token

    @staticmethod
    def _log_stderr(result: Optional[CommandResult]) -> None:
        if result is not None and result.stderr.strip():
            LOG.error("bw exited with %s: %s", result.returncode, result.stderr.strip())
