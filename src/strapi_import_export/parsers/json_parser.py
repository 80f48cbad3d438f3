"""JSON input parsing and serialization."""

import json
import logging
from collections.abc import Sequence
from typing import Any

from ..exceptions import MalformedInputError
from ._text import decode_content

logger = logging.getLogger(__name__)


def parse_json(content: bytes | str) -> list[dict[str, Any]]:
    """Parse a JSON document into records.

    A top-level array yields one record per element; a single top-level
    object is one record. Records keep input order.

    Args:
        content: Raw JSON input

    Returns:
        List of records

    Raises:
        MalformedInputError: On syntax errors, with line and column, or when
            the document is not an object or an array of objects

    Example:
        >>> parse_json(b'[{"title": "a"}, {"title": "b"}]')
        [{'title': 'a'}, {'title': 'b'}]
    """
    text = decode_content(content)

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInputError(
            f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
            line=e.lineno,
            column=e.colno,
        ) from e

    if isinstance(document, dict):
        return [document]

    if not isinstance(document, list):
        raise MalformedInputError(
            f"Expected a JSON array of objects, got: {type(document).__name__}"
        )

    for idx, item in enumerate(document):
        if not isinstance(item, dict):
            raise MalformedInputError(
                f"Expected JSON object at index {idx}, got: {type(item).__name__}",
                details={"index": idx},
            )

    logger.debug(f"Parsed {len(document)} JSON records")
    return document


def serialize_json(records: Sequence[dict[str, Any]], indent: int | None = 2) -> str:
    """Serialize records back to the JSON input format."""
    return json.dumps(list(records), indent=indent, ensure_ascii=False)
