"""Configuration models for strapi-import-export.

Both configurations are pydantic-settings models, so every field can be set
from the environment (``STRAPI_IMPORT_MAX_RELATION_DEPTH=3``,
``STRAPI_BASE_URL=...``) or a ``.env`` file, with explicit keyword arguments
taking precedence.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from .enums import FileType


class RetryConfig(BaseModel):
    """Retry policy for remote store calls.

    Remote media fetches are never retried; this applies to entity and media
    store requests only.
    """

    max_attempts: int = Field(3, ge=1)
    initial_wait: float = Field(1.0, ge=0)
    max_wait: float = Field(60.0, ge=0)
    exponential_base: float = Field(2.0, gt=0)


class ImportConfig(BaseSettings):
    """Settings consumed by the import pipeline.

    Attributes:
        trust_input_format: Skip the JSON/CSV consistency check
        unique_identifier_field: Field matching existing entries in every collection
        unique_identifier_fields: Per-collection override of the above
        max_relation_depth: Deepest nested record imported as a relation;
            deeper objects are kept as plain data
        allowed_file_types: Media allow-lists keyed by ``field`` or
            ``collection.field``; schema ``allowedTypes`` apply otherwise
        fetch_timeout: Timeout in seconds for remote media downloads
        max_concurrency: Top-level records processed at once (1 = sequential)
        break_cycles: Write cyclic nested records in two phases instead of
            failing with CyclicReferenceError
    """

    trust_input_format: bool = False
    unique_identifier_field: str | None = None
    unique_identifier_fields: dict[str, str] = Field(default_factory=dict)
    max_relation_depth: int = Field(5, ge=0)
    allowed_file_types: dict[str, list[FileType]] = Field(default_factory=dict)
    fetch_timeout: float = Field(30.0, gt=0)
    max_concurrency: int = Field(1, ge=1)
    break_cycles: bool = True

    model_config = SettingsConfigDict(
        env_prefix="STRAPI_IMPORT_",
        env_file=None,
        extra="ignore",
    )

    def get_unique_identifier_field(self, collection: str) -> str | None:
        """Unique identifier field of a collection, if one is configured."""
        return self.unique_identifier_fields.get(collection, self.unique_identifier_field)

    def get_allowed_file_types(self, collection: str, field_name: str) -> list[FileType] | None:
        """Configured media allow-list for a field, most specific key first."""
        qualified = f"{collection}.{field_name}"
        if qualified in self.allowed_file_types:
            return self.allowed_file_types[qualified]
        return self.allowed_file_types.get(field_name)


class StrapiConfig(BaseSettings):
    """Connection settings for the Strapi REST stores.

    Example:
        >>> config = StrapiConfig(
        ...     base_url="http://localhost:1337",
        ...     api_token="your-token",
        ... )
    """

    base_url: str
    api_token: SecretStr
    timeout: float = Field(30.0, gt=0)
    max_connections: int = Field(10, ge=1)
    verify_ssl: bool = True
    retry: RetryConfig = Field(default_factory=RetryConfig)

    model_config = SettingsConfigDict(
        env_prefix="STRAPI_",
        env_nested_delimiter="__",
        env_file=None,
        extra="ignore",
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def get_api_token(self) -> str:
        return self.api_token.get_secret_value()


class ConfigFactory:
    """Build configurations while mapping validation failures to ConfigurationError."""

    @staticmethod
    def create_import_config(**kwargs: Any) -> ImportConfig:
        """Create an ImportConfig from keyword arguments and the environment.

        Raises:
            ConfigurationError: If a value is invalid
        """
        try:
            return ImportConfig(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ImportConfig:
        return ConfigFactory.create_import_config(**data)

    @staticmethod
    def create_strapi_config(**kwargs: Any) -> StrapiConfig:
        try:
            return StrapiConfig(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @staticmethod
    def from_env_file(
        env_file: str | Path, required: bool = False
    ) -> tuple[StrapiConfig, ImportConfig]:
        """Load both configurations from a ``.env`` file.

        Args:
            env_file: Path to the file
            required: Raise when the file does not exist instead of falling
                back to environment variables

        Raises:
            ConfigurationError: If the file is required but missing, or a
                value is invalid
        """
        path = Path(env_file)
        if not path.exists():
            if required:
                raise ConfigurationError(f".env file not found: {env_file}")
            path = None  # type: ignore[assignment]

        try:
            strapi_config = StrapiConfig(_env_file=path)  # type: ignore[call-arg]
            import_config = ImportConfig(_env_file=path)  # type: ignore[call-arg]
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return strapi_config, import_config
