"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from core.config import RequirementPolicy, Settings


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_single_origin_string(self) -> None:
        """Single origin string is parsed correctly."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="http://localhost:3000",
        )
        assert settings.cors_origins == ["http://localhost:3000"]

    def test_parse_multiple_origins_with_whitespace(self) -> None:
        """Comma-separated origins are split and stripped."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="  http://localhost:3000 , https://builder.example.com  ",
        )
        assert settings.cors_origins == [
            "http://localhost:3000",
            "https://builder.example.com",
        ]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="",
        )
        assert settings.cors_origins == []

    def test_parse_trailing_comma(self) -> None:
        """Trailing comma is handled (empty entries filtered)."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://test",
            CORS_ORIGINS="http://localhost:3000,",
        )
        assert settings.cors_origins == ["http://localhost:3000"]

    def test_default_cors_origins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Default CORS origins is localhost:3000."""
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        settings = Settings(_env_file=None, database_url="postgresql://test")
        assert settings.cors_origins == ["http://localhost:3000"]


class TestHistoryAndPublishDefaults:
    """Tests for version history, undo/redo, and publish settings."""

    @pytest.fixture(autouse=True)
    def _clear_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "PUBLISH_BATCH_SIZE",
            "MAX_VERSIONS_PER_ENTITY",
            "VERSION_SNAPSHOT_INTERVAL",
            "HISTORY_LOAD_LIMIT",
            "STATE_CACHE_MAX_ENTRIES",
            "UNDO_REDO_MARK_TIMEOUT_SECONDS",
            "VERIFY_VERSION_HASHES",
            "REQUIREMENT_POLICY",
            "RESTORE_SOFT_DELETED_REQUIREMENTS",
        ):
            monkeypatch.delenv(name, raising=False)

    def test__defaults(self) -> None:
        """Defaults match the documented values."""
        settings = Settings(_env_file=None, database_url="postgresql://test")
        assert settings.publish_batch_size == 500
        assert settings.max_versions_per_entity == 50
        assert settings.version_snapshot_interval == 10
        assert settings.history_load_limit == 100
        assert settings.state_cache_max_entries == 1000
        assert settings.undo_redo_mark_timeout_seconds == 10.0
        assert settings.verify_version_hashes is True
        assert settings.requirement_policy == RequirementPolicy.STRICT
        assert settings.restore_soft_deleted_requirements is True

    def test__env_vars_override_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Settings are read from environment variables."""
        monkeypatch.setenv("PUBLISH_BATCH_SIZE", "25")
        monkeypatch.setenv("REQUIREMENT_POLICY", "warn")
        monkeypatch.setenv("VERIFY_VERSION_HASHES", "false")
        settings = Settings(_env_file=None, database_url="postgresql://test")
        assert settings.publish_batch_size == 25
        assert settings.requirement_policy == RequirementPolicy.WARN
        assert settings.verify_version_hashes is False

    def test__unknown_requirement_policy_rejected(self) -> None:
        """Only strict and warn are accepted."""
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                database_url="postgresql://test",
                REQUIREMENT_POLICY="ignore",
            )

    @pytest.mark.parametrize(
        "alias",
        [
            "PUBLISH_BATCH_SIZE",
            "MAX_VERSIONS_PER_ENTITY",
            "VERSION_SNAPSHOT_INTERVAL",
            "HISTORY_LOAD_LIMIT",
            "STATE_CACHE_MAX_ENTRIES",
        ],
    )
    def test__non_positive_limits_rejected(self, alias: str) -> None:
        """Zero would disable history or publishing and is refused."""
        with pytest.raises(ValidationError, match="must be positive"):
            Settings(_env_file=None, database_url="postgresql://test", **{alias: 0})

    def test__non_positive_mark_timeout_rejected(self) -> None:
        """A zero undo/redo mark timeout is refused."""
        with pytest.raises(ValidationError, match="must be positive"):
            Settings(
                _env_file=None,
                database_url="postgresql://test",
                UNDO_REDO_MARK_TIMEOUT_SECONDS=0,
            )
