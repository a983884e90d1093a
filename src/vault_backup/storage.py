from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

LOG = logging.getLogger(__name__)

ARTIFACT_PREFIX = "bitwarden_encrypted_export_"
ARTIFACT_SUFFIX = ".json"


class StorageError(Exception):
    """Raised when the backup directory cannot be provisioned."""


@dataclass
class BackupStorage:
    """Stores exports under ``<backup_root>/<YYYY-mm-dd>/``."""

    backup_root: Path

    def run_dir(self, started_at: datetime) -> Path:
        return self.backup_root / started_at.strftime("%Y-%m-%d")

    def prepare_run(self, started_at: datetime) -> Path:
        run_dir = self.run_dir(started_at)
        if run_dir.is_dir():
            LOG.info("Using existing backup directory: %s", run_dir)
            return run_dir

        try:
            run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create backup directory {run_dir}: {exc}") from exc
        LOG.info("Created backup directory: %s", run_dir)
        return run_dir

    @staticmethod
    def artifact_path(run_dir: Path, started_at: datetime) -> Path:
        return run_dir / f"{ARTIFACT_PREFIX}{started_at.strftime('%Y%m%d%H%M%S')}{ARTIFACT_SUFFIX}"

    @staticmethod
    def discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOG.warning("Could not remove partial export %s: %s", path, exc)
        else:
            LOG.info("Removed partial export %s", path)


def human_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = num_bytes / 1024
    for unit in ("K", "M"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"
