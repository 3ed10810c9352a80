"""
Tests for domain models.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from adfence.domain import ExportReport, ExportScope, FenceRecord

from conftest import POLYGON_BJ


class TestFenceRecord:
    """Test cases for FenceRecord."""

    def test_valid_record(self):
        record = FenceRecord(code=110_000_000_000, adcode=110000, fence=POLYGON_BJ)
        assert record.as_row() == (110_000_000_000, 110000, POLYGON_BJ)

    def test_code_must_match_adcode(self):
        with pytest.raises(ValidationError):
            FenceRecord(code=120_000_000_000, adcode=110000, fence=POLYGON_BJ)

    def test_adcode_width_is_checked(self):
        with pytest.raises(ValidationError):
            FenceRecord(code=11_000_000_000, adcode=11000, fence=POLYGON_BJ)

    def test_record_is_frozen(self):
        record = FenceRecord(code=110_000_000_000, adcode=110000, fence=POLYGON_BJ)
        with pytest.raises(ValidationError):
            record.adcode = 120000


class TestExportReport:
    """Test cases for ExportReport."""

    def test_totals(self):
        report = ExportReport(
            scope=ExportScope.PARTIAL,
            output_dir=Path("out"),
            written=[110000],
            failed={120000: "boom"},
        )
        assert report.total == 2
        assert not report.ok
