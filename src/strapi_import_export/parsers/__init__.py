"""Input classification and parsing.

Raw bytes go through ``detect_format`` and ``verify_format`` first, then the
matching parser turns them into an ordered list of records.
"""

from typing import Any

from ..models.enums import InputFormat
from .classifier import detect_format, verify_format
from .csv_parser import parse_csv, serialize_csv
from .json_parser import parse_json, serialize_json


def parse_records(content: bytes | str, fmt: InputFormat) -> list[dict[str, Any]]:
    """Parse content with the parser for ``fmt``."""
    if fmt == InputFormat.JSON:
        return parse_json(content)
    return parse_csv(content)


__all__ = [
    "detect_format",
    "parse_csv",
    "parse_json",
    "parse_records",
    "serialize_csv",
    "serialize_json",
    "verify_format",
]
