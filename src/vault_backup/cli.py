from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from typing import Optional, Sequence

from .config import BackupConfig, ConfigurationError, resolve_config
from .credentials import CredentialError, CredentialSource, EnvironmentCredentialSource, PromptCredentialSource
from .logger import configure_logging
from .mount import MountUnavailableError
from .notifications import build_notifier, format_message
from .orchestrator import BackupOrchestrator
from .storage import StorageError
from .vault_cli import BitwardenCLI, MissingDependencyError, VaultCommandError

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIG = 2
EXIT_DEPENDENCY = 3
EXIT_CREDENTIALS = 4
EXIT_MOUNT = 5
EXIT_STORAGE = 6
EXIT_VAULT_COMMAND = 7

FAILURE_EXIT_CODES = (
    (MissingDependencyError, EXIT_DEPENDENCY),
    (CredentialError, EXIT_CREDENTIALS),
    (MountUnavailableError, EXIT_MOUNT),
    (StorageError, EXIT_STORAGE),
    (VaultCommandError, EXIT_VAULT_COMMAND),
)


class Interrupted(BaseException):
    """Raised from signal handlers so cleanup blocks run."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by signal {signum}")
        self.exit_code = 128 + signum


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an encrypted backup of a Bitwarden vault.")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration YAML file (default: $VAULT_BACKUP_CONFIG or ~/.config/vault-backup/config.yaml).",
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Prompt for credentials, skip the mount wait and log to stdout.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL"),
        help="Log level (overrides the configuration file).",
    )
    return parser.parse_args(argv)


def install_signal_handlers() -> None:
    def _handle_signal(signum: int, _frame: Optional[object]) -> None:
        raise Interrupted(signum)

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)


def run_backup(
    config: BackupConfig,
    credential_source: CredentialSource,
    *,
    wait_for_mount: bool,
    orchestrator: Optional[BackupOrchestrator] = None,
) -> int:
    orchestrator = orchestrator or BackupOrchestrator(
        config=config,
        client=BitwardenCLI(config.cli_path),
        wait_for_mount=wait_for_mount,
    )
    notifier = build_notifier(config.notifications)

    try:
        result = orchestrator.run(credential_source)
    except Interrupted as exc:
        logging.error("%s; backup aborted", exc)
        if notifier:
            notifier.notify(format_message(False, str(exc)))
        return exc.exit_code
    except Exception as exc:  # noqa: BLE001
        exit_code = _exit_code_for(exc)
        if exit_code == EXIT_UNEXPECTED:
            logging.exception("Unexpected error during backup")
        else:
            logging.error("%s", exc)
        if notifier:
            notifier.notify(format_message(False, str(exc)))
        return exit_code

    logging.info("Backup %s written in %.2fs", result.artifact_path.name, result.duration_seconds)
    if notifier:
        notifier.notify(format_message(True, result.artifact_path.name))
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = resolve_config(args.config)
    except ConfigurationError as exc:
        configure_logging(args.log_level or "INFO")
        logging.error("Configuration error: %s", exc)
        return EXIT_CONFIG

    level = args.log_level or config.logging.level
    if args.interactive:
        configure_logging(level)
        credential_source: CredentialSource = PromptCredentialSource()
    else:
        configure_logging(level, log_file=config.logging.file, max_bytes=config.logging.max_bytes)
        credential_source = EnvironmentCredentialSource()

    install_signal_handlers()
    return run_backup(config, credential_source, wait_for_mount=not args.interactive)


def _exit_code_for(exc: BaseException) -> int:
    for exc_type, code in FAILURE_EXIT_CODES:
        if isinstance(exc, exc_type):
            return code
    return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
