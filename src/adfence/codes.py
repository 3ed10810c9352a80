"""
Region code resolution.

Adcodes are 6-digit administrative region codes. The fence table keys each
row by a 12-digit storage key, adcode * 1_000_000. All conversions between
the two live here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Union

from .errors import InvalidCodeFormat

KEY_MULTIPLIER = 1_000_000

ADCODE_MIN = 100_000
ADCODE_MAX = 999_999
KEY_MIN = 100_000_000_000
KEY_MAX = 999_999_999_999

REGION_FILE_SUFFIX = ".json"

CodeLike = Union[int, str]


def _coerce_int(value: CodeLike, expected: str) -> int:
    # bool is an int subclass, never a code
    if isinstance(value, bool):
        raise InvalidCodeFormat(value, expected)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # leading zeros would hide a wrong digit count
        if text.isdigit() and text.isascii() and not text.startswith("0"):
            return int(text)
    raise InvalidCodeFormat(value, expected)


def parse_adcode(value: CodeLike) -> int:
    """
    Validate and return a 6-digit adcode.

    Args:
        value: Adcode as int or decimal string

    Returns:
        Adcode as int

    Raises:
        InvalidCodeFormat: If value is not a positive 6-digit integer
    """
    code = _coerce_int(value, "6-digit adcode")
    if not ADCODE_MIN <= code <= ADCODE_MAX:
        raise InvalidCodeFormat(value, "6-digit adcode")
    return code


def to_key(adcode: CodeLike) -> int:
    """Return the 12-digit storage key for an adcode."""
    return parse_adcode(adcode) * KEY_MULTIPLIER


def from_key(key: CodeLike) -> int:
    """
    Recover the 6-digit adcode from a 12-digit storage key.

    Finer-grained keys (not a multiple of 1,000,000) map to their enclosing
    adcode by integer division.
    """
    value = _coerce_int(key, "12-digit storage key")
    if not KEY_MIN <= value <= KEY_MAX:
        raise InvalidCodeFormat(key, "12-digit storage key")
    return value // KEY_MULTIPLIER


def is_aggregate_key(key: int) -> bool:
    """True when the key encodes a county-level or coarser region."""
    return key % KEY_MULTIPLIER == 0


def normalize_codes(values: Iterable[CodeLike]) -> list[int]:
    """Parse adcodes, dropping duplicates while keeping first-seen order."""
    seen: dict[int, None] = {}
    for value in values:
        seen.setdefault(parse_adcode(value), None)
    return list(seen)


def region_filename(adcode: CodeLike) -> str:
    """File name of the region file for an adcode, e.g. '110000.json'."""
    return f"{parse_adcode(adcode)}{REGION_FILE_SUFFIX}"


def adcode_from_path(path: Path) -> int:
    """Parse the adcode encoded in a region file name."""
    path = Path(path)
    if path.suffix != REGION_FILE_SUFFIX:
        raise InvalidCodeFormat(path.name, f"<adcode>{REGION_FILE_SUFFIX} file name")
    return parse_adcode(path.stem)
