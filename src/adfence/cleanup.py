"""Temporary file management for staging artifacts."""

from __future__ import annotations

import json
import logging
import os
import shutil
import signal
import time
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_temp_root: Optional[Path] = None


def get_project_temp_dir() -> Path:
    """Get the temp directory path (ADFENCE_TEMP_DIR or ./temp)."""
    if _temp_root is not None:
        return _temp_root
    return Path(os.getenv("ADFENCE_TEMP_DIR", "temp"))


def set_project_temp_dir(path: Optional[Path]) -> None:
    """Override the temp directory root (None restores the default)."""
    global _temp_root
    _temp_root = Path(path) if path is not None else None


def get_pid_temp_dir() -> Path:
    """Get process-isolated temp directory for current PID."""
    pid_dir = get_project_temp_dir() / f"pid_{os.getpid()}"
    pid_dir.mkdir(parents=True, exist_ok=True)
    return pid_dir


@contextmanager
def staging_file(rows: Iterable[tuple], prefix: str = "batch") -> Iterator[Path]:
    """
    Write rows to a JSON-lines staging artifact and yield its path.

    The artifact is removed when the block exits, whether it completes,
    raises, or is interrupted (KeyboardInterrupt, or SystemExit raised by
    the SIGTERM handler installed by register_cleanup_handlers).

    Args:
        rows: Row tuples; each must be JSON serializable
        prefix: File name prefix

    Yields:
        Path to the staging artifact
    """
    path = get_pid_temp_dir() / f"{prefix}_{uuid.uuid4().hex}.jsonl"
    try:
        with open(path, "w", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(list(row), ensure_ascii=False))
                f.write("\n")
        logger.debug(f"Staged batch at {path}")
        yield path
    finally:
        try:
            path.unlink()
            logger.debug(f"Removed staging artifact {path}")
        except FileNotFoundError:
            pass


def read_staging_file(path: Path) -> list[tuple]:
    """Read back the rows written by staging_file."""
    with open(path, encoding="utf-8") as f:
        return [tuple(json.loads(line)) for line in f if line.strip()]


def cleanup_stale_files(retention_hours: int = 24) -> int:
    """
    Remove staging artifacts left behind by other processes.

    Processes killed with SIGKILL never reach their cleanup, so the next
    command sweeps their pid_* directories. The current process's directory
    is never touched.

    Args:
        retention_hours: Only artifacts older than this are removed

    Returns:
        Number of artifacts removed
    """
    temp_dir = get_project_temp_dir()
    if not temp_dir.exists():
        return 0

    cutoff = time.time() - retention_hours * 3600
    own_dir = f"pid_{os.getpid()}"
    removed = 0

    for pid_dir in temp_dir.glob("pid_*"):
        if not pid_dir.is_dir() or pid_dir.name == own_dir:
            continue
        for artifact in pid_dir.iterdir():
            try:
                if artifact.is_file() and artifact.stat().st_mtime < cutoff:
                    artifact.unlink()
                    removed += 1
                    logger.debug(f"Removed stale artifact {artifact}")
            except OSError as e:
                logger.warning(f"Could not remove stale artifact {artifact}: {e}")
        try:
            pid_dir.rmdir()
        except OSError:
            # still holds fresh artifacts
            pass

    if removed:
        logger.info(f"Removed {removed} stale staging artifacts (>{retention_hours}h)")
    return removed


def cleanup_current_pid() -> None:
    """Clean up temp files for current process."""
    pid_dir = get_project_temp_dir() / f"pid_{os.getpid()}"
    if pid_dir.exists():
        try:
            shutil.rmtree(pid_dir)
            logger.debug(f"Cleaned up PID temp directory: {pid_dir}")
        except OSError as e:
            logger.warning(f"Could not clean PID temp directory {pid_dir}: {e}")


def register_cleanup_handlers() -> None:
    """
    Turn SIGTERM into SystemExit so active context managers unwind.

    SIGINT already raises KeyboardInterrupt; both paths end in
    cleanup_current_pid via the CLI's finally block.
    """
    def signal_handler(signum: int, frame) -> None:
        logger.info(f"Received signal {signum}, cleaning up temp files...")
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, signal_handler)
