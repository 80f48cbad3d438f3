"""Collection schema models.

The entity store describes each collection with a Strapi-style schema
(``attributes`` keyed by field name). The importer only asks one question of
it: what kind of value does field F hold.
"""

from typing import Any

from pydantic import BaseModel, Field

from .enums import FieldKind, FileType, parse_file_types

_KIND_BY_TYPE = {
    "relation": FieldKind.RELATION,
    "media": FieldKind.MEDIA,
    "component": FieldKind.COMPONENT,
    "dynamiczone": FieldKind.DYNAMIC_ZONE,
}

_TO_MANY_RELATIONS = {"oneToMany", "manyToMany", "morphToMany"}


class CollectionInfo(BaseModel):
    """Display and naming information for a collection."""

    display_name: str = Field("", alias="displayName")
    singular_name: str | None = Field(None, alias="singularName")
    plural_name: str | None = Field(None, alias="pluralName")

    model_config = {"populate_by_name": True}


class FieldSchema(BaseModel):
    """Importer view of a single attribute."""

    name: str
    kind: FieldKind = FieldKind.SCALAR
    target: str | None = None
    multiple: bool = False
    allowed_types: list[FileType] | None = None


class CollectionSchema(BaseModel):
    """Schema of a collection (content type).

    Example:
        >>> schema = CollectionSchema(
        ...     uid="api::article.article",
        ...     attributes={
        ...         "title": {"type": "string"},
        ...         "cover": {"type": "media", "allowedTypes": ["images"]},
        ...     },
        ... )
        >>> schema.get_field("cover").kind
        <FieldKind.MEDIA: 'media'>
    """

    uid: str
    kind: str = "collectionType"
    info: CollectionInfo = Field(default_factory=CollectionInfo)
    attributes: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @property
    def plural_name(self) -> str | None:
        return self.info.plural_name

    def get_field_type(self, field_name: str) -> str | None:
        """Get the raw Strapi type of a field, or None if undeclared."""
        field = self.attributes.get(field_name)
        if isinstance(field, dict):
            return field.get("type")
        return None

    def get_field(self, field_name: str) -> FieldSchema | None:
        """Describe a field for the importer.

        Args:
            field_name: Name of the attribute

        Returns:
            FieldSchema, or None when the collection does not declare the field
        """
        field = self.attributes.get(field_name)
        if not isinstance(field, dict):
            return None

        kind = _KIND_BY_TYPE.get(field.get("type", ""), FieldKind.SCALAR)

        if kind == FieldKind.RELATION:
            return FieldSchema(
                name=field_name,
                kind=kind,
                target=field.get("target"),
                multiple=field.get("relation") in _TO_MANY_RELATIONS,
            )

        if kind == FieldKind.MEDIA:
            allowed = field.get("allowedTypes")
            return FieldSchema(
                name=field_name,
                kind=kind,
                multiple=bool(field.get("multiple", False)),
                allowed_types=parse_file_types(allowed) if allowed else None,
            )

        if kind == FieldKind.COMPONENT:
            return FieldSchema(
                name=field_name,
                kind=kind,
                target=field.get("component"),
                multiple=bool(field.get("repeatable", False)),
            )

        return FieldSchema(name=field_name, kind=kind)

    def is_relation_field(self, field_name: str) -> bool:
        return self.get_field_type(field_name) == "relation"

    def is_media_field(self, field_name: str) -> bool:
        return self.get_field_type(field_name) == "media"
