from __future__ import annotations

import getpass
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, MutableMapping, Optional, Protocol

LOG = logging.getLogger(__name__)

CLIENT_ID_ENV = "BW_CLIENT_ID"
CLIENT_SECRET_ENV = "BW_CLIENT_SECRET"
MASTER_PASSWORD_ENV = "BW_MASTER_PASSWORD"

# Names the bw CLI itself reads.
CLI_CLIENT_ID_ENV = "BW_CLIENTID"
CLI_CLIENT_SECRET_ENV = "BW_CLIENTSECRET"
SESSION_ENV = "BW_SESSION"

REQUIRED_ENV_VARS = (CLIENT_ID_ENV, CLIENT_SECRET_ENV, MASTER_PASSWORD_ENV)
SENSITIVE_ENV_VARS = REQUIRED_ENV_VARS + (CLI_CLIENT_ID_ENV, CLI_CLIENT_SECRET_ENV, SESSION_ENV)


class CredentialError(Exception):
    """Raised when credentials are missing or empty."""


@dataclass
class Credentials:
    client_id: str
    client_secret: str = field(repr=False)
    master_password: str = field(repr=False)

    def __enter__(self) -> "Credentials":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clear()

    def clear(self) -> None:
        self.client_id = ""
        self.client_secret = ""
        self.master_password = ""

    @property
    def cleared(self) -> bool:
        return not (self.client_id or self.client_secret or self.master_password)


class CredentialSource(Protocol):
    def load(self) -> Credentials:
        ...


class EnvironmentCredentialSource:
    """Reads credentials from the variables a systemd EnvironmentFile provides."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = os.environ if environ is None else environ

    def load(self) -> Credentials:
        LOG.info("Reading credentials from environment variables...")
        values = {}
        for name in REQUIRED_ENV_VARS:
            value = self._environ.get(name, "")
            if not value:
                raise CredentialError(f"{name} environment variable is not set")
            values[name] = value

        LOG.info("Credentials loaded from environment variables")
        return Credentials(
            client_id=values[CLIENT_ID_ENV],
            client_secret=values[CLIENT_SECRET_ENV],
            master_password=values[MASTER_PASSWORD_ENV],
        )


class PromptCredentialSource:
    """Asks the operator for credentials; secrets are read without echo."""

    def __init__(
        self,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
    ) -> None:
        self._prompt = prompt
        self._secret_prompt = secret_prompt

    def load(self) -> Credentials:
        try:
            return self._ask()
        except EOFError as exc:
            raise CredentialError("Input closed before all credentials were entered") from exc

    def _ask(self) -> Credentials:
        client_id = self._prompt("Enter your Bitwarden Client ID: ").strip()
        if not client_id:
            raise CredentialError("Client ID cannot be empty")

        client_secret = self._secret_prompt("Enter your Bitwarden Client Secret: ")
        if not client_secret:
            raise CredentialError("Client Secret cannot be empty")

        master_password = self._secret_prompt("Enter your Bitwarden account password for encryption: ")
        if not master_password:
            raise CredentialError("Master Password cannot be empty")

        return Credentials(
            client_id=client_id,
            client_secret=client_secret,
            master_password=master_password,
        )


def scrub_environment(
    names: Iterable[str] = SENSITIVE_ENV_VARS,
    environ: Optional[MutableMapping[str, str]] = None,
) -> None:
    target = os.environ if environ is None else environ
    for name in names:
        target.pop(name, None)
