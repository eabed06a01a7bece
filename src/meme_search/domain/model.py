"""Domain models for the meme catalog.

Value objects are immutable (``frozen=True``); the search core only ever reads
them. ``SearchableRecord`` is the projection of a meme that the full-text
index stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemeInput(BaseModel):
    """Fields supplied when importing a meme."""

    model_config = ConfigDict(frozen=True)

    path: str
    filename: str
    category: str
    hash: str
    text: str = ""
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def _ensure_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Meme(BaseModel):
    """A stored meme as returned to callers."""

    model_config = ConfigDict(frozen=True)

    id: int
    path: str
    filename: str
    category: str
    hash: str
    text: str = ""
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime


# Fields a caller may change after import; everything else is fixed at creation
UPDATABLE_FIELDS = frozenset({"path", "filename", "category", "text", "description", "keywords"})


@dataclass(frozen=True, slots=True)
class SearchableRecord:
    """Text-bearing projection of a meme, one per index entry."""

    id: int
    text: str
    description: str
    keywords: str
    filename: str

    @classmethod
    def from_meme(cls, meme: Meme) -> SearchableRecord:
        return cls(
            id=meme.id,
            text=meme.text or "",
            description=meme.description or "",
            keywords=flatten_keywords(meme.keywords),
            filename=meme.filename or "",
        )

    def fields(self) -> dict[str, str]:
        return {
            "text": self.text,
            "description": self.description,
            "keywords": self.keywords,
            "filename": self.filename,
        }


def flatten_keywords(keywords: list[str]) -> str:
    return " ".join(keyword.strip() for keyword in keywords if keyword and keyword.strip())
