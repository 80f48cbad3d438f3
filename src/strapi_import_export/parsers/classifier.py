"""Input format detection and verification.

This is a guard run before parsing: it decides whether content is JSON or
CSV and checks that the content is at least syntactically consistent with
that format. It never builds records.
"""

import csv
import io
import json
import logging
from pathlib import PurePath

from ..exceptions import FormatMismatchError, MalformedInputError
from ..models.enums import InputFormat
from ._text import decode_content

logger = logging.getLogger(__name__)

_FORMAT_BY_MIME: dict[str, InputFormat] = {
    "application/json": InputFormat.JSON,
    "text/json": InputFormat.JSON,
    "text/csv": InputFormat.CSV,
    "application/csv": InputFormat.CSV,
    "application/vnd.ms-excel": InputFormat.CSV,
}

_FORMAT_BY_EXTENSION: dict[str, InputFormat] = {
    ".json": InputFormat.JSON,
    ".csv": InputFormat.CSV,
}


def detect_format(
    content: bytes | str,
    *,
    declared_type: str | InputFormat | None = None,
    filename: str | None = None,
) -> InputFormat:
    """Resolve the format of an input.

    The declared type wins, then the file name extension, then the content
    itself (a leading ``[`` or ``{`` means JSON, anything else CSV).

    Args:
        content: Raw input
        declared_type: Format tag (``"json"``, ``"csv"``) or MIME type
        filename: Original file name

    Returns:
        Detected InputFormat

    Raises:
        FormatMismatchError: If the declared type is neither JSON nor CSV

    Example:
        >>> detect_format(b'[{"title": "a"}]')
        <InputFormat.JSON: 'json'>
        >>> detect_format(b"", declared_type="text/csv; charset=utf-8")
        <InputFormat.CSV: 'csv'>
    """
    if declared_type is not None:
        tag = str(declared_type.value if isinstance(declared_type, InputFormat) else declared_type)
        tag = tag.split(";", 1)[0].strip().lower()
        if tag in _FORMAT_BY_MIME:
            return _FORMAT_BY_MIME[tag]
        try:
            return InputFormat(tag)
        except ValueError as e:
            raise FormatMismatchError(
                f"Unsupported input type: {declared_type}",
                details={"declared_type": str(declared_type)},
            ) from e

    if filename:
        suffix = PurePath(filename).suffix.lower()
        if suffix in _FORMAT_BY_EXTENSION:
            return _FORMAT_BY_EXTENSION[suffix]

    text = decode_content(content).lstrip()
    return InputFormat.JSON if text[:1] in ("[", "{") else InputFormat.CSV


def verify_format(content: bytes | str, fmt: InputFormat, *, trust: bool = False) -> None:
    """Check that content is consistent with a format.

    Args:
        content: Raw input
        fmt: Expected format
        trust: Skip the check entirely

    Raises:
        FormatMismatchError: If the content does not look like ``fmt``
    """
    if trust:
        logger.debug(f"Skipping {fmt.value} format check (trusted input)")
        return

    try:
        text = decode_content(content)
    except MalformedInputError as e:
        raise FormatMismatchError(f"Input is not {fmt.value.upper()}: {e}") from e

    if fmt == InputFormat.JSON:
        try:
            json.loads(text)
        except json.JSONDecodeError as e:
            raise FormatMismatchError(
                f"Input is not JSON: {e.msg} (line {e.lineno}, column {e.colno})",
                details={"line": e.lineno, "column": e.colno},
            ) from e
        return

    rows = csv.reader(io.StringIO(text, newline=""))
    try:
        header = next(rows, None)
        if not header or not any(cell.strip() for cell in header):
            raise FormatMismatchError("Input is not CSV: missing header row")
        for row in rows:
            if not row:
                continue
            if len(row) != len(header):
                raise FormatMismatchError(
                    f"Input is not CSV: line {rows.line_num} has {len(row)} columns, "
                    f"header has {len(header)}",
                    details={"line": rows.line_num},
                )
    except csv.Error as e:
        raise FormatMismatchError(f"Input is not CSV: {e}") from e
