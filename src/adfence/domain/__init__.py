"""
Domain models and enumerations for fence synchronization.

Models:
- FenceRecord: One validated fence row
- ExportReport / LoadReport / CheckReport: Pipeline outcomes

Enums:
- ExportScope: Whole-table or explicit-code export
- Sequence: Composite lifecycle operations
"""

from .enums import ExportScope, Sequence
from .models import CheckReport, ExportReport, FenceRecord, LoadReport

__all__ = [
    "FenceRecord", "ExportReport", "LoadReport", "CheckReport",
    "ExportScope", "Sequence",
]
