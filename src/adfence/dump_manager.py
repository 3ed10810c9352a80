"""
Fence table backup and restore through pg_dump / pg_restore.

The dump is a single custom-format archive scoped to the fence table. Restore
drops the table first and replays the archive; it is only meant to read
archives written by backup.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Optional

import psycopg
from psycopg.conninfo import conninfo_to_dict, make_conninfo

from .config import Config
from .errors import BackupFailure
from .lifecycle import TableManager
from .utils import ensure_directory

logger = logging.getLogger(__name__)


class DumpManager:
    """Snapshot and restore of the fence table."""

    def __init__(self, config: Config, tables: TableManager):
        """
        Initialize dump manager.

        Args:
            config: Runtime configuration (connection string, backup path)
            tables: Lifecycle manager used to drop the table before restore
        """
        self.config = config
        self.tables = tables

    def backup(self, path: Optional[Path] = None) -> Path:
        """
        Dump the fence table to a custom-format archive.

        Args:
            path: Archive path (default: configured backup path)

        Returns:
            Path of the written archive

        Raises:
            BackupFailure: If pg_dump is missing or exits non-zero
        """
        target = Path(path) if path else self.config.fence.backup_path
        ensure_directory(target.parent)
        dsn, password = self._split_password()

        cmd = [
            self._find_binary("pg_dump"),
            "--format=custom",
            f"--table={self.config.fence.table}",
            f"--file={target}",
            dsn,
        ]
        logger.info(f"Backing up {self.config.fence.table} to {target}")
        self._run(cmd, "pg_dump", password)

        size_mb = target.stat().st_size / (1024 * 1024) if target.exists() else 0.0
        logger.info(f"Backup written: {target} ({size_mb:.1f} MB)")
        return target

    def restore(self, path: Optional[Path] = None) -> Path:
        """
        Drop the fence table and restore it from an archive.

        The archive is checked before anything is dropped.

        Raises:
            BackupFailure: If the archive is missing, pg_restore is missing,
                or pg_restore exits non-zero
        """
        source = Path(path) if path else self.config.fence.backup_path
        if not source.is_file():
            raise BackupFailure(f"Backup archive not found: {source}")

        binary = self._find_binary("pg_restore")
        dsn, password = self._split_password()
        self.tables.drop()

        cmd = [binary, f"--dbname={dsn}", str(source)]
        logger.info(f"Restoring {self.config.fence.table} from {source}")
        self._run(cmd, "pg_restore", password)
        logger.info(f"Restore completed from {source}")
        return source

    def _find_binary(self, name: str) -> str:
        binary = shutil.which(name)
        if not binary:
            raise BackupFailure(f"{name} not found on PATH; install the PostgreSQL client tools")
        return binary

    def _split_password(self) -> tuple[str, Optional[str]]:
        """
        Connection string without its password, plus the password.

        The password travels in PGPASSWORD so it never shows up in the
        process list.
        """
        try:
            params = conninfo_to_dict(self.config.database.url)
        except psycopg.ProgrammingError as e:
            raise BackupFailure(f"Cannot parse connection string: {e}") from e
        password = params.pop("password", None)
        # an empty parameter set means libpq defaults; the original URL carries no password then
        return make_conninfo(**params) or self.config.database.url, password

    def _run(self, cmd: list[str], tool: str, password: Optional[str] = None) -> None:
        start = time.time()
        env = dict(os.environ)
        if password:
            env["PGPASSWORD"] = password
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False, env=env)
        except OSError as e:
            raise BackupFailure(f"Failed to start {tool}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise BackupFailure(f"{tool} exited with status {result.returncode}: {stderr}")
        logger.debug(f"{tool} finished in {time.time() - start:.2f}s")
