from __future__ import annotations

import logging
import socket
from typing import Optional

import requests

from .config import NotificationsConfig

LOG = logging.getLogger(__name__)


class SlackNotifier:
    """Posts run outcomes to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, timeout: float = 10) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "vault-backup"})

    def notify(self, text: str) -> bool:
        try:
            response = self._session.post(self._webhook_url, json={"text": text}, timeout=self._timeout)
        except requests.RequestException as exc:
            LOG.warning("Slack notification failed: %s", exc)
            return False
        if response.status_code >= 400:
            LOG.warning("Slack notification rejected: %s %s", response.status_code, response.text)
            return False
        return True


def build_notifier(config: NotificationsConfig) -> Optional[SlackNotifier]:
    webhook = config.resolve_slack_webhook()
    if not webhook:
        return None
    return SlackNotifier(webhook)


def format_message(success: bool, detail: str) -> str:
    status = "succeeded" if success else "FAILED"
    return f"Vault backup on {socket.gethostname()} {status}: {detail}"
