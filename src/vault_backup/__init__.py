"""Encrypted backups of a self-hosted Bitwarden vault through the ``bw`` CLI."""

from __future__ import annotations

from .config import load_config, BackupConfig  # noqa: F401
from .orchestrator import BackupOrchestrator, BackupResult  # noqa: F401
