from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .credentials import (
    CLI_CLIENT_ID_ENV,
    CLI_CLIENT_SECRET_ENV,
    SENSITIVE_ENV_VARS,
    SESSION_ENV,
)

LOG = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


class MissingDependencyError(Exception):
    """Raised when the vault CLI binary cannot be found."""


class VaultCommandError(Exception):
    """Raised when a vault CLI invocation fails."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def token(self) -> str:
        return self.stdout.strip()


class VaultClient(Protocol):
    def configure_server(self, url: str) -> CommandResult:
        ...

    def login(self, client_id: str, client_secret: str) -> CommandResult:
        ...

    def unlock(self, token: str, password: str) -> CommandResult:
        ...

    def export(self, token: str, password: str, destination: Path) -> CommandResult:
        ...

    def logout(self) -> CommandResult:
        ...


def check_dependency(cli_path: str) -> str:
    resolved = shutil.which(cli_path)
    if not resolved:
        raise MissingDependencyError(
            f"Bitwarden CLI ({cli_path}) is not installed. Install with: npm install -g @bitwarden/cli"
        )
    return resolved


class BitwardenCLI:
    """Runs the Bitwarden ``bw`` binary as a subprocess.

    Secrets reach the child only through its environment or standard input,
    never through the argument vector.
    """

    def __init__(self, cli_path: str = "bw", timeout: Optional[float] = 300) -> None:
        self._cli_path = cli_path
        self._timeout = timeout

    def configure_server(self, url: str) -> CommandResult:
        return self._run(["config", "server", url])

    def login(self, client_id: str, client_secret: str) -> CommandResult:
        return self._run(
            ["login", "--apikey", "--raw"],
            extra_env={CLI_CLIENT_ID_ENV: client_id, CLI_CLIENT_SECRET_ENV: client_secret},
        )

    def unlock(self, token: str, password: str) -> CommandResult:
        return self._run(
            ["unlock", "--raw"],
            extra_env=self._session_env(token),
            stdin=password + "\n",
        )

    def export(self, token: str, password: str, destination: Path) -> CommandResult:
        with destination.open("xb") as fh:
            return self._run(
                ["export", "--format", "encrypted_json", "--raw"],
                extra_env=self._session_env(token),
                stdin=password + "\n",
                stdout=fh,
            )

    def logout(self) -> CommandResult:
        return self._run(["logout"])

    # Internal helpers ------------------------------------------------------
    @staticmethod
    def _session_env(token: str) -> Dict[str, str]:
        return {SESSION_ENV: token} if token else {}

    def _build_env(self, extra_env: Optional[Dict[str, str]]) -> Dict[str, str]:
        env = {key: value for key, value in os.environ.items() if key not in SENSITIVE_ENV_VARS}
        if extra_env:
            env.update(extra_env)
        return env

    def _run(
        self,
        args: List[str],
        *,
        extra_env: Optional[Dict[str, str]] = None,
        stdin: Optional[str] = None,
        stdout=None,
    ) -> CommandResult:
        cmd = [self._cli_path, *args]
        LOG.debug("Running %s %s", self._cli_path, args[0])
        try:
            completed = subprocess.run(
                cmd,
                env=self._build_env(extra_env),
                input=stdin.encode("utf-8") if stdin is not None else None,
                stdout=stdout if stdout is not None else subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(COMMAND_NOT_FOUND, "", str(exc))
        except subprocess.TimeoutExpired:
            return CommandResult(1, "", f"{self._cli_path} {args[0]} timed out after {self._timeout}s")

        captured = completed.stdout.decode("utf-8", "ignore") if stdout is None and completed.stdout else ""
        return CommandResult(
            returncode=completed.returncode,
            stdout=captured,
            stderr=completed.stderr.decode("utf-8", "ignore") if completed.stderr else "",
        )
