"""Application configuration using pydantic-settings."""
from enum import StrEnum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RequirementPolicy(StrEnum):
    """How undo/redo reacts when a version requires an entity that no longer resolves."""

    STRICT = "strict"  # Refuse the operation
    WARN = "warn"  # Log and apply anyway


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Publishing - rows per upsert statement (bounds statement/transaction size)
    publish_batch_size: int = Field(default=500, validation_alias="PUBLISH_BATCH_SIZE")

    # Version history
    max_versions_per_entity: int = Field(default=50, validation_alias="MAX_VERSIONS_PER_ENTITY")
    version_snapshot_interval: int = Field(
        default=10, validation_alias="VERSION_SNAPSHOT_INTERVAL",
    )
    history_load_limit: int = Field(default=100, validation_alias="HISTORY_LOAD_LIMIT")
    state_cache_max_entries: int = Field(
        default=1000, validation_alias="STATE_CACHE_MAX_ENTRIES",
    )

    # Undo/redo
    undo_redo_mark_timeout_seconds: float = Field(
        default=10.0, validation_alias="UNDO_REDO_MARK_TIMEOUT_SECONDS",
    )
    verify_version_hashes: bool = Field(default=True, validation_alias="VERIFY_VERSION_HASHES")
    requirement_policy: RequirementPolicy = Field(
        default=RequirementPolicy.STRICT, validation_alias="REQUIREMENT_POLICY",
    )
    restore_soft_deleted_requirements: bool = Field(
        default=True, validation_alias="RESTORE_SOFT_DELETED_REQUIREMENTS",
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject limits that would disable history or publishing entirely."""
        positive_fields = {
            "publish_batch_size": self.publish_batch_size,
            "max_versions_per_entity": self.max_versions_per_entity,
            "version_snapshot_interval": self.version_snapshot_interval,
            "history_load_limit": self.history_load_limit,
            "state_cache_max_entries": self.state_cache_max_entries,
        }
        for name, value in positive_fields.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.undo_redo_mark_timeout_seconds <= 0:
            raise ValueError(
                "undo_redo_mark_timeout_seconds must be positive, "
                f"got {self.undo_redo_mark_timeout_seconds}",
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
