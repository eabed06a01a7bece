"""Centralized configuration for meme-search using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Indexed text fields, in FTS5 column order
SEARCHABLE_FIELDS: tuple[str, ...] = ("text", "description", "keywords", "filename")


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every value can be overridden with a ``MEME_SEARCH_`` prefixed environment
    variable or a ``.env`` file entry.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEME_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    db_path: Path = Field(default=Path("./memedb/memes.sqlite3"), description="SQLite database file")
    search_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite", description="Full-text backend: SQLite FTS5 or the in-process inverted index"
    )

    # Search behaviour
    result_limit: int = Field(default=200, ge=1, description="Maximum number of records returned per search")
    max_query_length: int = Field(default=1024, ge=1, description="Longest accepted raw query string")
    max_query_depth: int = Field(default=64, ge=1, description="Deepest accepted parenthesis/operator nesting")
    field_boosts: dict[str, float] = Field(
        default_factory=lambda: dict.fromkeys(SEARCHABLE_FIELDS, 1.0),
        description="Per-field BM25 weights",
    )

    # Logging / observability
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    otlp_endpoint: str = Field(default="", description="OTLP/HTTP trace collector endpoint (disabled when empty)")

    # HTTP server
    http_host: str = Field(default="127.0.0.1", description="HTTP server host")
    http_port: int = Field(default=3001, ge=1, le=65535, description="HTTP server port")
    mask_error_details: bool = Field(
        default=True, description="Mask internal error details in HTTP error responses"
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        if value.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()

    @model_validator(mode="after")
    def _check_field_boosts(self) -> "Settings":
        unknown = set(self.field_boosts) - set(SEARCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"field_boosts has unknown fields: {', '.join(sorted(unknown))}")
        if any(weight <= 0 for weight in self.field_boosts.values()):
            raise ValueError("field_boosts weights must be positive")
        return self

    def get_field_boosts(self) -> dict[str, float]:
        """Return a boost for every searchable field, defaulting missing ones to 1.0."""
        return {name: float(self.field_boosts.get(name, 1.0)) for name in SEARCHABLE_FIELDS}


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment, applying explicit overrides last."""
    return Settings(**overrides)  # type: ignore[arg-type]
