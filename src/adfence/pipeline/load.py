"""
Loader - region files to fence table

Reads region files and applies them as one upsert so a run either updates
every requested fence or none of them.
"""

import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

import psycopg

from ..cleanup import read_staging_file, staging_file
from ..codes import CodeLike, adcode_from_path, normalize_codes, region_filename, to_key
from ..config import Config
from ..domain.models import FenceRecord, LoadReport
from ..errors import InvalidCodeFormat, LoadBatchFailure
from ..store import FenceStore

logger = logging.getLogger(__name__)


class Loader:
    """Region-file to fence-table bulk loader."""

    def __init__(self, config: Config, store: FenceStore, source_dir: Optional[Path] = None):
        self.config = config
        self.store = store
        self.source_dir = Path(source_dir) if source_dir else config.fence.data_dir

    def discover_codes(self) -> list[int]:
        """Adcodes of the region files in the source directory, ascending."""
        if not self.source_dir.is_dir():
            raise LoadBatchFailure(f"Region file directory not found: {self.source_dir}")

        codes = []
        for path in self.source_dir.glob("*.json"):
            try:
                codes.append(adcode_from_path(path))
            except InvalidCodeFormat:
                logger.debug(f"Skipping {path.name}: not a region file")
        return sorted(codes)

    def read_rows(self, codes: list[int]) -> list[tuple[int, int, str]]:
        """
        Build (code, adcode, geojson) rows from region files.

        Payloads are passed through unparsed; PostGIS validates them when
        the batch executes.
        """
        rows = []
        for adcode in codes:
            path = self.source_dir / region_filename(adcode)
            try:
                payload = path.read_text(encoding="utf-8")
            except OSError as e:
                raise LoadBatchFailure(f"Cannot read region file {path}: {e}") from e
            rows.append(FenceRecord(code=to_key(adcode), adcode=adcode, fence=payload).as_row())
        return rows

    def load(self, codes: Optional[Iterable[CodeLike]] = None) -> LoadReport:
        """
        Upsert region files into the fence table.

        Args:
            codes: Adcodes to load; empty or None loads every file in the
                source directory

        Returns:
            LoadReport listing the upserted codes

        Raises:
            InvalidCodeFormat: If an explicit code is malformed
            LoadBatchFailure: If a file is missing or the upsert fails; the
                table is left unchanged
            StorageUnavailable: If the database cannot be reached
        """
        start = time.time()
        explicit = list(codes or [])
        targets = normalize_codes(explicit) if explicit else self.discover_codes()
        report = LoadReport(source_dir=self.source_dir)

        if not targets:
            logger.warning(f"No region files to load from {self.source_dir}")
            return report

        rows = self.read_rows(targets)
        logger.info(f"Loading {len(rows)} fences from {self.source_dir}")

        with staging_file(rows, prefix="fence_batch") as staged:
            batch = read_staging_file(staged)
            try:
                self.store.upsert_fences(batch)
            except psycopg.Error as e:
                raise LoadBatchFailure(f"Upsert of {len(batch)} fences rejected: {e}") from e

        report.codes = targets
        report.elapsed = time.time() - start
        logger.info(f"Loaded {report.count} fences in {report.elapsed:.2f}s")
        return report
