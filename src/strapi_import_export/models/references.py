"""Media and relation references plus the stored objects they resolve to.

Raw record values are loosely typed (``5``, ``"https://..."``,
``{"url": ..., "caption": ...}``). The ``parse_*`` helpers turn them into
explicit reference models so resolvers never inspect raw values.
"""

from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, Field


class StoredFile(BaseModel):
    """A file held by the media store."""

    id: int
    hash: str
    ext: str = ""
    name: str
    url: str | None = None
    mime: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def extension(self) -> str:
        """Extension without the leading dot, lowercased.

        Falls back to the file name when the store did not record ``ext``.
        """
        ext = self.ext or PurePosixPath(self.name).suffix
        return ext.lstrip(".").lower()


class StoredEntity(BaseModel):
    """An entity held by the entity store."""

    id: int
    collection: str
    data: dict[str, Any] = Field(default_factory=dict)


class UploadMetadata(BaseModel):
    """File info sent along with an upload."""

    name: str
    alternative_text: str | None = Field(None, alias="alternativeText")
    caption: str | None = None
    mime: str | None = None
    size: int = 0

    model_config = {"populate_by_name": True}


# Media references


class MediaById(BaseModel):
    """Reference to an existing file by id."""

    id: int


class MediaByUrl(BaseModel):
    """Reference to a remote file, fetched when not already imported."""

    url: str
    name: str | None = None
    alternative_text: str | None = Field(None, alias="alternativeText")
    caption: str | None = None

    model_config = {"populate_by_name": True}


class MediaByName(BaseModel):
    """Reference to an existing file by exact name."""

    name: str


class MediaDescriptor(BaseModel):
    """Object reference carrying any of id, url and name.

    Lookups are attempted in that order until one yields a file.
    """

    id: int | None = None
    url: str | None = None
    name: str | None = None
    alternative_text: str | None = Field(None, alias="alternativeText")
    caption: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def candidates(self) -> list["MediaReference"]:
        refs: list[MediaReference] = []
        if self.id is not None:
            refs.append(MediaById(id=self.id))
        if self.url:
            refs.append(
                MediaByUrl(
                    url=self.url,
                    name=self.name,
                    alternative_text=self.alternative_text,
                    caption=self.caption,
                )
            )
        if self.name:
            refs.append(MediaByName(name=self.name))
        return refs


MediaReference = MediaById | MediaByUrl | MediaByName | MediaDescriptor


def parse_media_reference(value: Any) -> MediaReference | None:
    """Build a media reference from a raw record value.

    Args:
        value: ``int`` (id), ``str`` (URL) or ``dict`` (descriptor)

    Returns:
        Reference model, or None when the value cannot reference a file

    Example:
        >>> parse_media_reference("https://x/y/pic.png")
        MediaByUrl(url='https://x/y/pic.png', name=None, alternative_text=None, caption=None)
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return MediaById(id=value)
    if isinstance(value, str):
        return MediaByUrl(url=value) if value.strip() else None
    if isinstance(value, dict):
        descriptor = MediaDescriptor.model_validate(value)
        if descriptor.id is None and not descriptor.url and not descriptor.name:
            return None
        return descriptor
    return None


# Relation references


class RelationById(BaseModel):
    """Reference to an existing entity by id."""

    id: int


class RelationByUniqueValue(BaseModel):
    """Reference to an existing entity by its unique identifier field value."""

    value: str | int | float


class NestedRecord(BaseModel):
    """Related record given inline, imported before its parent."""

    data: dict[str, Any]


RelationReference = RelationById | RelationByUniqueValue | NestedRecord


def parse_relation_reference(value: Any) -> RelationReference | None:
    """Build a relation reference from a raw record value.

    ``{"id": 3}`` alone is an id reference; any other object is a nested
    record. Non-integer scalars are unique field values.

    Example:
        >>> parse_relation_reference(3)
        RelationById(id=3)
        >>> parse_relation_reference("jane-doe")
        RelationByUniqueValue(value='jane-doe')
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return RelationById(id=value)
    if isinstance(value, (str, float)):
        if isinstance(value, str) and not value.strip():
            return None
        return RelationByUniqueValue(value=value)
    if isinstance(value, dict):
        if set(value) == {"id"} and isinstance(value["id"], int):
            return RelationById(id=value["id"])
        return NestedRecord(data=value)
    return None
