"""Exception hierarchy for strapi-import-export.

Errors split into two groups:

- Batch-level (``FormatError`` and its subclasses, ``AuthorizationError``):
  raised before any write and abort the whole run.
- Record-level (``RecordImportError`` and its subclasses): caught per
  top-level record and stored in that record's outcome.
"""

from typing import Any


class StrapiError(Exception):
    """Base exception for all strapi-import-export errors.

    Attributes:
        message: Human-readable error message
        details: Additional context (collection, field, source reference, ...)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(StrapiError):
    """Raised when configuration values are missing or invalid."""


class AuthorizationError(StrapiError):
    """Raised when the caller is not allowed to import into a collection."""


class ImportExportError(StrapiError):
    """Base exception for import pipeline errors."""


# Batch-level errors


class FormatError(ImportExportError):
    """Base exception for input format problems."""


class FormatMismatchError(FormatError):
    """Raised when input content does not match its declared format."""


class MalformedInputError(FormatError):
    """Raised when input cannot be parsed into records.

    Attributes:
        line: 1-based line of the offending location, when known
        column: 1-based column of the offending location, when known
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.line = line
        self.column = column


# Record-level errors


class RecordImportError(ImportExportError):
    """Base exception for failures scoped to a single record."""


class MediaError(RecordImportError):
    """Raised when a media reference cannot be resolved or stored."""


class FetchError(MediaError):
    """Raised when a remote media file cannot be fetched.

    Attributes:
        url: Source URL
        status_code: HTTP status code, or None on transport errors
    """

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.url = url
        self.status_code = status_code


class RelationError(RecordImportError):
    """Raised when a relation reference cannot be resolved."""


class CyclicReferenceError(RelationError):
    """Raised when nested records reference each other and cycles are not broken."""


class StoreRejectedError(RecordImportError):
    """Raised when the entity or media store refuses a read or write.

    Attributes:
        status_code: HTTP status code when the store is remote
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class ServerError(StoreRejectedError):
    """Raised when a remote store answers with a 5xx status."""


class ConnectionError(StoreRejectedError):
    """Raised when a remote store cannot be reached."""
