"""
Enumerations for fence table operations.
"""

from enum import Enum


class ExportScope(str, Enum):
    """Export run scope."""
    WHOLE = "whole"       # All aggregate codes; data directory is reset first
    PARTIAL = "partial"   # Explicit codes only; other files are left untouched


class Sequence(str, Enum):
    """Composite lifecycle operations."""
    RESET = "reset"       # drop + create
    SETUP = "setup"       # create + load + index
    RELOAD = "reload"     # truncate + load + check
