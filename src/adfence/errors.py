"""
Error taxonomy for fence synchronization.

Every failure the core reports derives from FenceError so the CLI can map
them to a non-zero exit status in one place. Configuration problems use
ConfigurationError from adfence.config.settings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .domain.models import ExportReport


class FenceError(Exception):
    """Base class for all fence synchronization errors."""
    pass


class InvalidCodeFormat(FenceError, ValueError):
    """Raised when a region code or storage key has the wrong shape."""

    def __init__(self, value: object, expected: str = "6-digit adcode"):
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid code {value!r}: expected {expected}")


class StorageUnavailable(FenceError):
    """Raised when the database cannot be reached or the protocol fails."""
    pass


class RegionNotFound(FenceError):
    """Raised when no fence row exists for a requested code."""

    def __init__(self, adcode: int):
        self.adcode = adcode
        super().__init__(f"No fence stored for adcode {adcode}")


class PartialExportFailure(FenceError):
    """Raised after an export run in which one or more regions failed."""

    def __init__(self, report: "ExportReport"):
        self.report = report
        failed = ", ".join(str(code) for code in sorted(report.failed))
        super().__init__(
            f"Export failed for {len(report.failed)} of {report.total} regions: {failed}"
        )


class LoadBatchFailure(FenceError):
    """Raised when the combined upsert (or its input files) cannot be applied."""
    pass


class LifecycleSequenceFailure(FenceError):
    """Raised when a step of a composite lifecycle operation fails."""

    def __init__(self, sequence: str, step: str, cause: Optional[BaseException] = None):
        self.sequence = sequence
        self.step = step
        self.cause = cause
        message = f"{sequence} failed at step '{step}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class BackupFailure(FenceError):
    """Raised when pg_dump or pg_restore fails or is not installed."""
    pass


class CheckFailure(FenceError):
    """Raised when the fence table violates code = adcode * 1_000_000."""

    def __init__(self, report):
        self.report = report
        super().__init__(
            f"{report.invalid_keys} of {report.total} rows violate code = adcode * 1000000"
        )
