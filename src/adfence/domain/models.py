"""
Domain Models

Pydantic models for fence records and the reports returned by each pipeline.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..codes import KEY_MULTIPLIER, parse_adcode, from_key
from .enums import ExportScope


class FenceRecord(BaseModel):
    """One row of the fence table."""
    model_config = ConfigDict(frozen=True)

    code: int = Field(..., description="12-digit storage key, adcode * 1_000_000")
    adcode: int = Field(..., description="6-digit administrative region code")
    fence: str = Field(..., description="GeoJSON geometry text, passed through unparsed")

    @model_validator(mode="after")
    def _check_key(self) -> "FenceRecord":
        parse_adcode(self.adcode)
        from_key(self.code)
        if self.code != self.adcode * KEY_MULTIPLIER:
            raise ValueError(f"code {self.code} does not match adcode {self.adcode}")
        return self

    def as_row(self) -> tuple[int, int, str]:
        """Row tuple in fence table column order."""
        return (self.code, self.adcode, self.fence)


class ExportReport(BaseModel):
    """Outcome of an export run."""
    scope: ExportScope
    output_dir: Path
    written: list[int] = Field(default_factory=list, description="Adcodes written")
    failed: dict[int, str] = Field(default_factory=dict, description="Adcode -> error message")
    elapsed: float = 0.0

    @property
    def total(self) -> int:
        return len(self.written) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed


class LoadReport(BaseModel):
    """Outcome of a load run."""
    codes: list[int] = Field(default_factory=list, description="Adcodes upserted")
    source_dir: Path
    elapsed: float = 0.0

    @property
    def count(self) -> int:
        return len(self.codes)


class CheckReport(BaseModel):
    """Integrity summary of the fence table."""
    total: int = 0
    invalid_keys: int = Field(0, description="Rows where code != adcode * 1_000_000")
    orphans: int = Field(0, description="Rows whose code is missing from the adcode table")
    sample_invalid: list[int] = Field(default_factory=list)
    sample_orphans: list[int] = Field(default_factory=list)
    adcode_table_present: Optional[bool] = None

    @property
    def ok(self) -> bool:
        return self.invalid_keys == 0
