"""Shared decoding of raw input."""

from ..exceptions import MalformedInputError


def decode_content(content: bytes | str) -> str:
    """Decode raw input as UTF-8, dropping a leading byte order mark.

    Raises:
        MalformedInputError: If the bytes are not valid UTF-8
    """
    if isinstance(content, str):
        return content.removeprefix("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedInputError(f"Input is not valid UTF-8: {e}") from e
