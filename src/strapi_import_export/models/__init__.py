"""Data models for strapi-import-export."""

from .config import ConfigFactory, ImportConfig, RetryConfig, StrapiConfig
from .enums import FieldKind, FileType, InputFormat, OutcomeStatus, RecordState
from .outcome import ImportOutcome, ImportResult
from .references import (
    MediaById,
    MediaByName,
    MediaByUrl,
    MediaDescriptor,
    MediaReference,
    NestedRecord,
    RelationById,
    RelationByUniqueValue,
    RelationReference,
    StoredEntity,
    StoredFile,
    UploadMetadata,
    parse_media_reference,
    parse_relation_reference,
)
from .schema import CollectionInfo, CollectionSchema, FieldSchema

__all__ = [
    # Configuration
    "ConfigFactory",
    "ImportConfig",
    "RetryConfig",
    "StrapiConfig",
    # Enums
    "FieldKind",
    "FileType",
    "InputFormat",
    "OutcomeStatus",
    "RecordState",
    # Results
    "ImportOutcome",
    "ImportResult",
    # References
    "MediaById",
    "MediaByName",
    "MediaByUrl",
    "MediaDescriptor",
    "MediaReference",
    "NestedRecord",
    "RelationById",
    "RelationByUniqueValue",
    "RelationReference",
    "StoredEntity",
    "StoredFile",
    "UploadMetadata",
    "parse_media_reference",
    "parse_relation_reference",
    # Schema
    "CollectionInfo",
    "CollectionSchema",
    "FieldSchema",
]
