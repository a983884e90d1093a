from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable

LOG = logging.getLogger(__name__)


class MountUnavailableError(Exception):
    """Raised when the backup mount never becomes writable."""


def mount_ready(mount_path: Path, backup_root: Path) -> bool:
    if not mount_path.is_dir() or not os.access(mount_path, os.W_OK):
        return False
    try:
        backup_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOG.debug("Cannot create %s yet: %s", backup_root, exc)
        return False
    return True


def wait_for_mount(
    mount_path: Path,
    backup_root: Path,
    attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll until ``mount_path`` is writable and ``backup_root`` exists.

    Returns the attempt number that succeeded. Raises
    :class:`MountUnavailableError` once ``attempts`` polls have failed.
    """
    LOG.info("Checking if %s is mounted and accessible...", mount_path)

    for attempt in range(1, attempts + 1):
        if mount_ready(mount_path, backup_root):
            LOG.info("Mount confirmed accessible (attempt %d)", attempt)
            return attempt
        if attempt < attempts:
            LOG.info("Mount not ready yet (attempt %d/%d), waiting...", attempt, attempts)
            sleep(delay)

    raise MountUnavailableError(
        f"Mount not accessible after {attempts} attempts; check that it is mounted at {mount_path}"
    )
