"""Convert Windows (CRLF) line endings to Unix (LF) line endings in a tree."""

from __future__ import annotations

import argparse
import fnmatch
import logging
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .logger import configure_logging

LOG = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192


class DirectoryNotFoundError(Exception):
    """Raised when the directory to normalise does not exist."""


@dataclass
class ConversionSummary:
    processed: int = 0
    converted: List[Path] = field(default_factory=list)
    skipped_binary: int = 0
    failed: List[Path] = field(default_factory=list)


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def iter_candidate_files(
    directory: Path,
    extensions: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> Iterator[Path]:
    suffixes = {f".{ext.lstrip('.')}" for ext in extensions}
    for root, _dirs, files in os.walk(directory):
        for name in sorted(files):
            if suffixes and Path(name).suffix not in suffixes:
                continue
            if any(fnmatch.fnmatch(name, pattern) for pattern in exclude):
                continue
            path = Path(root) / name
            if path.is_file() and not path.is_symlink():
                yield path


def is_binary(data: bytes) -> bool:
    return b"\0" in data[:BINARY_SNIFF_BYTES]


def _replace_contents(path: Path, data: bytes) -> None:
    """Write ``data`` to a sibling temp file, then rename it over ``path``."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def convert_file(path: Path, dry_run: bool = False) -> bool:
    """Rewrite ``path`` with LF endings; returns whether it contained CRLF."""
    data = path.read_bytes()
    if b"\r\n" not in data:
        return False
    if not dry_run:
        _replace_contents(path, data.replace(b"\r\n", b"\n"))
    return True


def normalize_tree(
    directory: Path,
    extensions: Sequence[str] = (),
    exclude: Sequence[str] = (),
    dry_run: bool = False,
) -> ConversionSummary:
    if not directory.is_dir():
        raise DirectoryNotFoundError(f"Directory '{directory}' does not exist")

    summary = ConversionSummary()
    for path in iter_candidate_files(directory, extensions, exclude):
        try:
            _process_file(path, dry_run, summary)
        except OSError as exc:
            LOG.warning("Could not convert %s: %s", path, exc)
            summary.failed.append(path)
    return summary


def _process_file(path: Path, dry_run: bool, summary: ConversionSummary) -> None:
    with path.open("rb") as fh:
        head = fh.read(BINARY_SNIFF_BYTES)
    if is_binary(head):
        LOG.debug("Skipping binary file: %s", path)
        summary.skipped_binary += 1
        return

    if convert_file(path, dry_run=dry_run):
        summary.converted.append(path)
        if dry_run:
            LOG.info("[DRY RUN] Would convert: %s", path)
        else:
            LOG.debug("Converted: %s", path)
    else:
        LOG.debug("Already Unix format: %s", path)
    summary.processed += 1


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert Windows line endings (CRLF) to Unix line endings (LF).",
        epilog="Example: %(prog)s -e txt,sh,py -x '*.log,temp*'",
    )
    parser.add_argument("-d", "--directory", default=".", help="Directory to process (default: current).")
    parser.add_argument("-e", "--extensions", help="Only process these extensions (comma-separated).")
    parser.add_argument("-x", "--exclude", help="Exclude file names matching these patterns (comma-separated).")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Report files without modifying them.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    directory = Path(args.directory)
    extensions = _split_list(args.extensions)
    exclude = _split_list(args.exclude)

    LOG.info("Converting Windows line endings to Unix line endings in %s", directory)
    if extensions:
        LOG.info("Extensions: %s", ", ".join(extensions))
    if exclude:
        LOG.info("Excluding: %s", ", ".join(exclude))
    if args.dry_run:
        LOG.info("DRY RUN MODE - no files will be modified")

    try:
        summary = normalize_tree(directory, extensions, exclude, dry_run=args.dry_run)
    except DirectoryNotFoundError as exc:
        LOG.error("%s", exc)
        return 1

    LOG.info("Text files processed: %d (binary skipped: %d)", summary.processed, summary.skipped_binary)
    verb = "would be converted" if args.dry_run else "converted"
    LOG.info("Files %s: %d", verb, len(summary.converted))
    if summary.failed:
        LOG.error("Files that could not be converted: %d", len(summary.failed))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
