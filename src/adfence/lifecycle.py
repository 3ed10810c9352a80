"""
Fence table lifecycle: schema primitives and the fixed composite sequences
built from them (reset, setup, reload).
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from typing import Optional

from .config import Config
from .domain.enums import Sequence
from .domain.models import CheckReport
from .errors import CheckFailure, LifecycleSequenceFailure
from .pipeline.load import Loader
from .store import FenceStore
from .utils import timer

logger = logging.getLogger(__name__)

Step = tuple[str, Callable[[], object]]


class TableManager:
    """
    Create, index, drop, truncate and check the fence table; reorder the
    adcode table.

    Composite operations run their steps in order and stop at the first
    failure without undoing earlier steps.
    """

    def __init__(self, config: Config, store: FenceStore, loader: Optional[Loader] = None):
        self.config = config
        self.store = store
        self.loader = loader or Loader(config, store)

    @property
    def table(self) -> str:
        return self.config.fence.table

    def create(self) -> None:
        """Drop if exists, then create the empty fence table."""
        logger.info(f"Creating table {self.table}")
        self.store.create_table()

    @timer
    def index(self) -> None:
        """Build lookup and spatial indexes on a populated table."""
        logger.info(f"Building indexes on {self.table}")
        self.store.create_indexes()

    def drop(self) -> None:
        logger.info(f"Dropping table {self.table}")
        self.store.drop_table()

    def truncate(self) -> None:
        logger.info(f"Truncating table {self.table}")
        self.store.truncate_table()

    @timer
    def reorder(self) -> None:
        """Rewrite the adcode table in (rank, code) physical order."""
        logger.info(
            f"Reordering {self.config.fence.adcode_table} "
            f"via {self.config.fence.adcode_staging_table}"
        )
        self.store.reorder_adcodes()

    def clean(self) -> bool:
        """
        Remove the region-file directory.

        Returns:
            True if a directory was removed
        """
        data_dir = self.config.fence.data_dir
        if not data_dir.exists():
            logger.info(f"Nothing to clean: {data_dir} does not exist")
            return False
        shutil.rmtree(data_dir)
        logger.info(f"Removed {data_dir}")
        return True

    def check(self) -> CheckReport:
        """Report row count, key-invariant violations and orphaned codes."""
        report = self.store.check_integrity()

        logger.info(f"{self.table}: {report.total:,} rows")
        if report.invalid_keys:
            logger.error(
                f"{report.invalid_keys} rows violate code = adcode * 1000000, "
                f"e.g. {report.sample_invalid}"
            )
        if report.adcode_table_present is False:
            logger.warning(f"Table {self.config.fence.adcode_table} not found; skipped reference check")
        elif report.orphans:
            logger.warning(
                f"{report.orphans} rows have no entry in {self.config.fence.adcode_table}, "
                f"e.g. {report.sample_orphans}"
            )
        return report

    # ------------------------------------------------------------------
    # Composite sequences
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """drop + create"""
        self.run_sequence(Sequence.RESET, [
            ("drop", self.drop),
            ("create", self.create),
        ])

    def setup(self) -> None:
        """create + load + index"""
        self.run_sequence(Sequence.SETUP, [
            ("create", self.create),
            ("load", self.loader.load),
            ("index", self.index),
        ])

    def reload(self) -> CheckReport:
        """truncate + load + check; a failed check fails the sequence."""
        results = self.run_sequence(Sequence.RELOAD, [
            ("truncate", self.truncate),
            ("load", self.loader.load),
            ("check", self._strict_check),
        ])
        return results["check"]

    def run_sequence(self, sequence: Sequence, steps: list[Step]) -> dict[str, object]:
        """
        Run steps in order, stopping at the first failure.

        Returns:
            Mapping of step name to its return value

        Raises:
            LifecycleSequenceFailure: Naming the step that failed
        """
        name = Sequence(sequence).value
        results: dict[str, object] = {}
        for index, (step, action) in enumerate(steps, start=1):
            logger.info(f"[{name} {index}/{len(steps)}] {step}")
            try:
                results[step] = action()
            except Exception as e:
                logger.error(f"{name} stopped at '{step}': {e}")
                raise LifecycleSequenceFailure(name, step, e) from e
        logger.info(f"{name} completed")
        return results

    def _strict_check(self) -> CheckReport:
        report = self.check()
        if not report.ok:
            raise CheckFailure(report)
        return report
