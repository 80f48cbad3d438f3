"""CSV input parsing and serialization.

Column naming convention:

- ``title``: top-level field
- ``cover.url``: nested object (``{"cover": {"url": ...}}``)
- ``tags[0]``, ``tags[1].name``: list items, by index
- ``tags`` repeated across several columns: list of the non-empty values

Cells are decoded the way JSON would read them when they look like JSON
(``[...]``, ``{...}``, ``"..."``, numbers, ``true``/``false``/``null``); other
cells stay strings and empty cells become None. Serialization writes strings
that would read back as another value (``"42"``, ``"true"``, ``""``) as JSON
strings, so records survive a round trip.
"""

import csv
import io
import json
import logging
import re
from collections import Counter
from collections.abc import Sequence
from typing import Any

from ..exceptions import MalformedInputError
from ._text import decode_content

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")
_NUMBER = re.compile(r"-?(0|[1-9]\d*)(\.\d+)?([eE][+-]?\d+)?")
_LITERALS = {"true": True, "false": False, "null": None}

PathToken = str | int


def parse_column_name(column: str) -> list[PathToken]:
    """Split a column name into a path of keys and list indexes.

    Raises:
        MalformedInputError: If the name does not follow the convention

    Example:
        >>> parse_column_name("tags[1].name")
        ['tags', 1, 'name']
    """
    tokens: list[PathToken] = []
    pos = 0
    name = column.strip()

    while pos < len(name):
        if tokens and name[pos] == ".":
            pos += 1
        match = _TOKEN.match(name, pos)
        if not match:
            raise MalformedInputError(f"Invalid column name: {column!r}")
        key, index = match.groups()
        tokens.append(key if key is not None else int(index))
        pos = match.end()

    if not tokens or not isinstance(tokens[0], str):
        raise MalformedInputError(f"Invalid column name: {column!r}")
    return tokens


def decode_cell(cell: str, coerce_types: bool = True) -> Any:
    """Decode a CSV cell value.

    Example:
        >>> decode_cell('{"url": "https://x/y.png"}')
        {'url': 'https://x/y.png'}
        >>> decode_cell("42"), decode_cell(""), decode_cell("007")
        (42, None, '007')
    """
    if cell == "":
        return None

    stripped = cell.strip()
    if stripped[:1] in ("[", "{") or (len(stripped) > 1 and stripped[0] == stripped[-1] == '"'):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            logger.debug(f"Cell looks like JSON but does not parse, keeping text: {cell!r}")
            return cell

    if coerce_types:
        if stripped in _LITERALS:
            return _LITERALS[stripped]
        if _NUMBER.fullmatch(stripped):
            return json.loads(stripped)

    return cell


def _assign(record: dict[str, Any], path: list[PathToken], value: Any, column: str) -> None:
    container: Any = record
    for token, next_token in zip(path, path[1:]):
        child_default: Any = [] if isinstance(next_token, int) else {}
        if isinstance(token, int):
            if not isinstance(container, list):
                raise MalformedInputError(f"Column {column!r} conflicts with another column")
            while len(container) <= token:
                container.append(None)
            if container[token] is None:
                container[token] = child_default
            container = container[token]
        else:
            if not isinstance(container, dict):
                raise MalformedInputError(f"Column {column!r} conflicts with another column")
            if container.get(token) is None:
                container[token] = child_default
            container = container[token]
        if not isinstance(container, type(child_default)):
            raise MalformedInputError(f"Column {column!r} conflicts with another column")

    last = path[-1]
    if isinstance(last, int):
        if not isinstance(container, list):
            raise MalformedInputError(f"Column {column!r} conflicts with another column")
        while len(container) <= last:
            container.append(None)
        container[last] = value
    else:
        if not isinstance(container, dict):
            raise MalformedInputError(f"Column {column!r} conflicts with another column")
        container[last] = value


def _compact(value: Any) -> Any:
    """Drop holes left in index-built lists."""
    if isinstance(value, list):
        return [_compact(v) for v in value if v is not None]
    if isinstance(value, dict):
        return {k: _compact(v) for k, v in value.items()}
    return value


def parse_csv(content: bytes | str, coerce_types: bool = True) -> list[dict[str, Any]]:
    """Parse CSV with a header row into records.

    Args:
        content: Raw CSV input
        coerce_types: Decode numbers, booleans and null from cell text

    Returns:
        List of records, one per data row, in input order

    Raises:
        MalformedInputError: On a missing header, invalid column names or a
            row whose column count differs from the header

    Example:
        >>> parse_csv("name,cover.url\\na,https://x/y/pic.png\\n")
        [{'name': 'a', 'cover': {'url': 'https://x/y/pic.png'}}]
    """
    text = decode_content(content)
    reader = csv.reader(io.StringIO(text, newline=""))

    try:
        header = next(reader, None)
        if not header or not any(h.strip() for h in header):
            raise MalformedInputError("CSV input has no header row", line=1)

        paths = [parse_column_name(h) for h in header]
        counts = Counter(h.strip() for h in header)
        repeated = {name for name, count in counts.items() if count > 1}
        for name in repeated:
            if len(parse_column_name(name)) != 1:
                raise MalformedInputError(f"Nested column repeated in header: {name!r}", line=1)

        records: list[dict[str, Any]] = []
        for row in reader:
            if not row:
                continue
            if len(row) != len(header):
                raise MalformedInputError(
                    f"CSV line {reader.line_num} has {len(row)} columns, "
                    f"header has {len(header)}",
                    line=reader.line_num,
                )

            record: dict[str, Any] = {}
            for column, path, cell in zip(header, paths, row):
                value = decode_cell(cell, coerce_types)
                name = column.strip()

                if name in repeated:
                    values = record.setdefault(name, [])
                    if value is not None:
                        values.append(value)
                elif len(path) == 1:
                    if value is not None or name not in record:
                        record[name] = value
                elif value is not None:
                    _assign(record, path, value, column)

            records.append(_compact(record))
    except csv.Error as e:
        raise MalformedInputError(f"Invalid CSV: {e}", line=reader.line_num) from e

    logger.debug(f"Parsed {len(records)} CSV records")
    return records


def flatten_record(record: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten a record into CSV columns following the naming convention.

    Example:
        >>> flatten_record({"name": "a", "tags": [{"name": "x"}], "cover": None})
        {'name': 'a', 'tags[0].name': 'x', 'cover': ''}
    """
    flat: dict[str, str] = {}
    for key, value in record.items():
        column = f"{prefix}.{key}" if prefix else key
        flat.update(_flatten_value(column, value))
    return flat


def _flatten_value(column: str, value: Any) -> dict[str, str]:
    if isinstance(value, dict) and value:
        return flatten_record(value, column)
    if isinstance(value, list) and value:
        flat: dict[str, str] = {}
        for idx, item in enumerate(value):
            flat.update(_flatten_value(f"{column}[{idx}]", item))
        return flat
    if value is None:
        return {column: ""}
    if isinstance(value, str):
        if decode_cell(value) != value:
            return {column: json.dumps(value, ensure_ascii=False)}
        return {column: value}
    return {column: json.dumps(value, ensure_ascii=False)}


def serialize_csv(records: Sequence[dict[str, Any]]) -> str:
    """Serialize records to the CSV input format.

    The header is the union of flattened columns in first-seen order.
    """
    rows = [flatten_record(r) for r in records]
    header: dict[str, None] = {}
    for row in rows:
        header.update(dict.fromkeys(row))

    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=list(header), restval="", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return out.getvalue()
