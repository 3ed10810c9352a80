"""
Exporter - fence table to region files

Writes one GeoJSON file per adcode into the data directory using a bounded
thread pool. Each unit reads its own row over its own connection and owns
exactly one output file, so units never share mutable state.
"""

import logging
import shutil
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Optional

from ..codes import CodeLike, normalize_codes, region_filename, to_key
from ..config import Config
from ..domain.enums import ExportScope
from ..domain.models import ExportReport
from ..errors import PartialExportFailure, RegionNotFound
from ..store import FenceStore
from ..utils import ensure_directory

logger = logging.getLogger(__name__)


class Exporter:
    """
    Fence table to region-file exporter.

    Whole export (no codes) resets the data directory and writes every
    aggregate region. Partial export (explicit codes) only touches the
    files for those codes.
    """

    def __init__(self, config: Config, store: FenceStore, out_dir: Optional[Path] = None):
        """
        Initialize exporter.

        Args:
            config: Runtime configuration (pool widths, data directory)
            store: Storage backend
            out_dir: Output directory override
        """
        self.config = config
        self.store = store
        self.out_dir = Path(out_dir) if out_dir else config.fence.data_dir

    def export(self, codes: Optional[Iterable[CodeLike]] = None) -> ExportReport:
        """
        Export fences to <out_dir>/<adcode>.json.

        Args:
            codes: Adcodes to export; empty or None exports all aggregates

        Returns:
            ExportReport with written codes

        Raises:
            InvalidCodeFormat: If an explicit code is malformed (before any I/O)
            StorageUnavailable: If the aggregate code list cannot be read
            PartialExportFailure: If any region failed; other files are kept
        """
        start = time.time()
        explicit = normalize_codes(codes or [])

        if explicit:
            scope = ExportScope.PARTIAL
            targets = explicit
            workers = self.config.fence.partial_export_workers
            ensure_directory(self.out_dir)
        else:
            scope = ExportScope.WHOLE
            targets = self.store.list_aggregate_adcodes()
            workers = self.config.fence.export_workers
            self._reset_output_dir()

        logger.info(f"Exporting {len(targets)} fences to {self.out_dir} ({scope.value}, {workers} workers)")

        report = ExportReport(scope=scope, output_dir=self.out_dir)
        if targets:
            self._run_pool(targets, workers, report)

        report.written.sort()
        report.elapsed = time.time() - start

        if report.failed:
            for adcode, message in sorted(report.failed.items()):
                logger.error(f"  {adcode}: {message}")
            raise PartialExportFailure(report)

        logger.info(f"Exported {len(report.written)} fences in {report.elapsed:.2f}s")
        return report

    def export_one(self, adcode: int) -> Path:
        """
        Fetch one fence and write its region file.

        Raises:
            RegionNotFound: If the table has no row for adcode
        """
        geojson = self.store.fetch_geojson(to_key(adcode))
        if geojson is None:
            raise RegionNotFound(adcode)

        path = self.out_dir / region_filename(adcode)
        path.write_text(geojson, encoding="utf-8")
        logger.debug(f"Wrote {path}")
        return path

    def _run_pool(self, targets: list[int], workers: int, report: ExportReport) -> None:
        width = max(1, min(workers, len(targets)))
        with ThreadPoolExecutor(max_workers=width, thread_name_prefix="fence-export") as executor:
            futures = {executor.submit(self.export_one, adcode): adcode for adcode in targets}
            for future in as_completed(futures):
                adcode = futures[future]
                try:
                    future.result()
                    report.written.append(adcode)
                except Exception as e:
                    # one region's failure never cancels its siblings
                    logger.warning(f"Export failed for {adcode}: {type(e).__name__}: {e}")
                    report.failed[adcode] = f"{type(e).__name__}: {e}"

    def _reset_output_dir(self) -> None:
        if self.out_dir.exists():
            shutil.rmtree(self.out_dir)
            logger.debug(f"Cleared {self.out_dir}")
        ensure_directory(self.out_dir)
