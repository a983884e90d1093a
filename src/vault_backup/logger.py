from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .config import DEFAULT_LOG_MAX_BYTES

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROTATED_SUFFIX = ".old"


def rotate_log(log_file: Path, max_bytes: int = DEFAULT_LOG_MAX_BYTES) -> bool:
    """Rename ``log_file`` to ``<log_file>.old`` once it exceeds ``max_bytes``.

    A previous ``.old`` file is replaced, so at most one rotated file exists.
    """
    try:
        size = log_file.stat().st_size
    except FileNotFoundError:
        return False
    if size <= max_bytes:
        return False
    os.replace(log_file, log_file.with_name(log_file.name + ROTATED_SUFFIX))
    return True


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
) -> None:
    rotated = False
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        rotated = rotate_log(log_file, max_bytes)
        handler: logging.Handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if rotated:
        logging.getLogger(__name__).info("Log file rotated due to size")
