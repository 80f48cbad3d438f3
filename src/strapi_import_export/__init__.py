"""strapi-import-export: Import JSON and CSV entries into Strapi collections.

This package provides:
- Format detection and parsing of JSON and CSV input
- Media resolution with per-run deduplication of remote files
- Relation resolution, including nested records and reference cycles
- Per-record create-or-update with ordered outcomes
- In-memory and Strapi REST stores
"""

from .__version__ import __version__
from .exceptions import (
    AuthorizationError,
    ConfigurationError,
    CyclicReferenceError,
    FetchError,
    FormatError,
    FormatMismatchError,
    ImportExportError,
    MalformedInputError,
    MediaError,
    RecordImportError,
    RelationError,
    ServerError,
    StoreRejectedError,
    StrapiError,
)
from .importer import EntryImporter, MediaResolver, RelationResolver
from .models import (
    ConfigFactory,
    FileType,
    ImportConfig,
    ImportOutcome,
    ImportResult,
    InputFormat,
    OutcomeStatus,
    RecordState,
    RetryConfig,
    StrapiConfig,
)
from .parsers import detect_format, parse_csv, parse_json, parse_records, verify_format
from .protocols import Authorizer, EntityStore, MediaStore

__all__ = [
    "__version__",
    # Import pipeline
    "EntryImporter",
    "MediaResolver",
    "RelationResolver",
    # Configuration
    "ConfigFactory",
    "ImportConfig",
    "RetryConfig",
    "StrapiConfig",
    # Results
    "ImportOutcome",
    "ImportResult",
    "OutcomeStatus",
    "RecordState",
    # Formats
    "FileType",
    "InputFormat",
    "detect_format",
    "parse_csv",
    "parse_json",
    "parse_records",
    "verify_format",
    # Protocols (for dependency injection)
    "Authorizer",
    "EntityStore",
    "MediaStore",
    # Exceptions
    "StrapiError",
    "ConfigurationError",
    "AuthorizationError",
    "ImportExportError",
    "FormatError",
    "FormatMismatchError",
    "MalformedInputError",
    "RecordImportError",
    "MediaError",
    "FetchError",
    "RelationError",
    "CyclicReferenceError",
    "StoreRejectedError",
    "ServerError",
]
