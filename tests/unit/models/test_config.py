"""Tests for configuration models and ConfigFactory."""

from pathlib import Path

import pytest

from strapi_import_export import (
    ConfigFactory,
    ConfigurationError,
    FileType,
    ImportConfig,
    RetryConfig,
    StrapiConfig,
)


class TestImportConfig:
    """Test ImportConfig defaults and lookups."""

    def test_defaults(self) -> None:
        config = ImportConfig()

        assert config.trust_input_format is False
        assert config.unique_identifier_field is None
        assert config.max_relation_depth == 5
        assert config.max_concurrency == 1
        assert config.fetch_timeout == 30.0
        assert config.break_cycles is True

    def test_unique_identifier_override(self) -> None:
        config = ImportConfig(
            unique_identifier_field="slug",
            unique_identifier_fields={"api::author.author": "email"},
        )

        assert config.get_unique_identifier_field("api::article.article") == "slug"
        assert config.get_unique_identifier_field("api::author.author") == "email"

    def test_allowed_file_types_most_specific_first(self) -> None:
        config = ImportConfig(
            allowed_file_types={
                "cover": ["images"],
                "api::article.article.cover": ["images", "videos"],
            }
        )

        assert config.get_allowed_file_types("api::article.article", "cover") == [
            FileType.IMAGES,
            FileType.VIDEOS,
        ]
        assert config.get_allowed_file_types("api::page.page", "cover") == [FileType.IMAGES]
        assert config.get_allowed_file_types("api::page.page", "gallery") is None

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings are read from STRAPI_IMPORT_* variables."""
        monkeypatch.setenv("STRAPI_IMPORT_MAX_RELATION_DEPTH", "2")
        monkeypatch.setenv("STRAPI_IMPORT_UNIQUE_IDENTIFIER_FIELD", "slug")
        monkeypatch.setenv("STRAPI_IMPORT_BREAK_CYCLES", "false")

        config = ImportConfig()

        assert config.max_relation_depth == 2
        assert config.unique_identifier_field == "slug"
        assert config.break_cycles is False

    def test_explicit_values_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STRAPI_IMPORT_MAX_CONCURRENCY", "8")

        assert ImportConfig(max_concurrency=2).max_concurrency == 2


class TestStrapiConfig:
    """Test StrapiConfig."""

    def test_trailing_slash_stripped(self) -> None:
        config = StrapiConfig(base_url="http://localhost:1337/", api_token="token")

        assert config.base_url == "http://localhost:1337"
        assert config.get_api_token() == "token"
        assert config.retry == RetryConfig()

    def test_token_hidden_in_repr(self) -> None:
        config = StrapiConfig(base_url="http://localhost:1337", api_token="secret-token")

        assert "secret-token" not in repr(config)

    def test_nested_retry_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STRAPI_BASE_URL", "http://strapi:1337")
        monkeypatch.setenv("STRAPI_API_TOKEN", "env-token")
        monkeypatch.setenv("STRAPI_RETRY__MAX_ATTEMPTS", "5")

        config = StrapiConfig()  # type: ignore[call-arg]

        assert config.base_url == "http://strapi:1337"
        assert config.retry.max_attempts == 5


class TestConfigFactory:
    """Test ConfigFactory methods."""

    def test_create_import_config(self) -> None:
        config = ConfigFactory.create_import_config(max_relation_depth=1)

        assert config.max_relation_depth == 1

    def test_invalid_value(self) -> None:
        """Test validation errors become ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            ConfigFactory.create_import_config(max_concurrency=0)

    def test_unknown_file_type(self) -> None:
        with pytest.raises(ConfigurationError):
            ConfigFactory.from_dict({"allowed_file_types": {"cover": ["documents"]}})

    def test_missing_strapi_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("STRAPI_BASE_URL", raising=False)
        monkeypatch.delenv("STRAPI_API_TOKEN", raising=False)

        with pytest.raises(ConfigurationError):
            ConfigFactory.create_strapi_config()

    def test_from_env_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("STRAPI_BASE_URL", raising=False)
        monkeypatch.delenv("STRAPI_API_TOKEN", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text(
            "STRAPI_BASE_URL=http://from-file:1337\n"
            "STRAPI_API_TOKEN=file-token\n"
            "STRAPI_IMPORT_UNIQUE_IDENTIFIER_FIELD=slug\n"
        )

        strapi_config, import_config = ConfigFactory.from_env_file(env_file)

        assert strapi_config.base_url == "http://from-file:1337"
        assert strapi_config.get_api_token() == "file-token"
        assert import_config.unique_identifier_field == "slug"

    def test_required_env_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match=".env file not found"):
            ConfigFactory.from_env_file(tmp_path / "missing.env", required=True)
