"""Enumerations shared across the import pipeline."""

from collections.abc import Iterable
from enum import Enum

from ..exceptions import ConfigurationError


class InputFormat(str, Enum):
    """Supported input formats."""

    JSON = "json"
    CSV = "csv"


class FileType(str, Enum):
    """Strapi media ``allowedTypes`` categories."""

    AUDIOS = "audios"
    IMAGES = "images"
    VIDEOS = "videos"
    FILES = "files"


def parse_file_types(values: Iterable[str]) -> list[FileType]:
    """Convert type names to FileType members.

    Raises:
        ConfigurationError: On a type name Strapi does not define
    """
    types: list[FileType] = []
    for value in values:
        try:
            types.append(FileType(value))
        except ValueError as e:
            raise ConfigurationError(f"Strapi file type {value!r} not handled") from e
    return types


class FieldKind(str, Enum):
    """Kind of a collection attribute as seen by the importer."""

    SCALAR = "scalar"
    RELATION = "relation"
    MEDIA = "media"
    COMPONENT = "component"
    DYNAMIC_ZONE = "dynamiczone"


class RecordState(str, Enum):
    """Lifecycle of a top-level record during an import run."""

    PENDING = "pending"
    RESOLVING_MEDIA = "resolving_media"
    RESOLVING_RELATIONS = "resolving_relations"
    WRITING = "writing"
    COMMITTED = "committed"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    """Final status of a top-level record."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"
