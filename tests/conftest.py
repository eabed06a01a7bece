"""Shared test fixtures and configuration."""

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
import os
import sqlite3

import pytest


# Deterministic environment for every config-dependent module
TEST_ENV = {
    "MEME_SEARCH_SEARCH_BACKEND": "sqlite",
    "MEME_SEARCH_RESULT_LIMIT": "200",
    "MEME_SEARCH_MAX_QUERY_LENGTH": "1024",
    "MEME_SEARCH_MAX_QUERY_DEPTH": "64",
    "MEME_SEARCH_LOG_LEVEL": "info",
    "MEME_SEARCH_LOG_JSON": "false",
    "MEME_SEARCH_OTLP_ENDPOINT": "",
    "MEME_SEARCH_HTTP_HOST": "127.0.0.1",
    "MEME_SEARCH_HTTP_PORT": "15011",
    "MEME_SEARCH_MASK_ERROR_DETAILS": "true",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from meme_search.bootstrap import Services, build_services
from meme_search.config import Settings
from meme_search.domain.model import MemeInput
from meme_search.search.memory_backend import MemoryBackend
from meme_search.storage.sqlite_pragmas import fts5_available


def _sqlite_has_fts5() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        return fts5_available(conn)
    finally:
        conn.close()


HAS_FTS5 = _sqlite_has_fts5()
requires_fts5 = pytest.mark.skipif(not HAS_FTS5, reason="SQLite build lacks FTS5")

# Backend variants every search property must hold for
BACKEND_VARIANTS = [
    pytest.param("sqlite", marks=requires_fts5, id="sqlite-fts5"),
    pytest.param("memory", id="memory"),
    pytest.param("memory-no-proximity", id="memory-post-filter"),
]

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def meme_input(
    n: int, text: str, *, description: str = "", keywords: list[str] | None = None, filename: str = ""
) -> MemeInput:
    """Build an import payload whose created_at grows with ``n``."""
    return MemeInput(
        path=f"/memes/{n}.jpg",
        filename=filename or f"meme-{n}.jpg",
        category="reaction",
        hash=f"hash-{n:04d}",
        text=text,
        description=description,
        keywords=keywords or [],
        created_at=BASE_TIME + timedelta(hours=n),
    )


SAMPLE_MEMES = [
    meme_input(
        1,
        "Surprised Pikachu face",
        description="pikachu looks shocked",
        keywords=["pokemon", "surprised"],
        filename="surprised-pikachu.jpg",
    ),
    meme_input(
        2,
        "Distracted boyfriend looking at another girl",
        description="stock photo of a man turning around",
        keywords=["distracted", "relationship"],
        filename="distracted-boyfriend.jpg",
    ),
    meme_input(
        3,
        "This is fine",
        description="dog sitting in a burning room drinking coffee",
        keywords=["fire", "dog"],
        filename="this-is-fine.png",
    ),
    meme_input(
        4,
        "One does not simply walk into Mordor",
        description="Boromir explains the plan",
        keywords=["lotr", "boromir"],
        filename="one-does-not-simply.jpg",
    ),
    meme_input(
        5,
        "Pikachu and a dog",
        description="cute pokemon next to a happy dog",
        keywords=["pokemon", "dog"],
        filename="pikachu-dog.png",
    ),
    meme_input(6, "an exact match is rare but this phrase is not"),
    meme_input(7, "the exact phrase appears here"),
    meme_input(8, "cat sat on the mat"),
    meme_input(9, "cat ran away from the big red mat"),
    meme_input(10, "pikapika goes the pokemon", keywords=["pikapika"]),
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset MEME_SEARCH_ variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def settings_factory(tmp_path) -> Callable[..., Settings]:
    def _make(**overrides: object) -> Settings:
        overrides.setdefault("db_path", tmp_path / "memes.sqlite3")
        return Settings(**overrides)

    return _make


@pytest.fixture
def services_factory(settings_factory) -> Iterator[Callable[..., Services]]:
    """Build service stacks for a backend variant; all are closed after the test."""
    opened: list[Services] = []

    def _make(variant: str = "memory", **overrides: object) -> Services:
        if variant == "memory-no-proximity":
            settings = settings_factory(search_backend="memory", **overrides)
            services = build_services(
                settings,
                backend=MemoryBackend(field_boosts=settings.get_field_boosts(), native_proximity=False),
            )
        else:
            services = build_services(settings_factory(search_backend=variant, **overrides))
        opened.append(services)
        return services

    yield _make
    for services in opened:
        services.close()


@pytest.fixture
def require_fts5() -> None:
    if not HAS_FTS5:
        pytest.skip("SQLite build lacks FTS5")


@pytest.fixture(params=BACKEND_VARIANTS)
def backend_variant(request) -> str:
    return request.param


@pytest.fixture
def catalog(services_factory, backend_variant) -> Services:
    """Services over the configured backend variant, seeded with SAMPLE_MEMES."""
    services = services_factory(backend_variant)
    for meme in SAMPLE_MEMES:
        services.catalog.add(meme)
    return services


@pytest.fixture
def sample_memes() -> list[MemeInput]:
    return list(SAMPLE_MEMES)


@pytest.fixture
def make_meme() -> Callable[..., MemeInput]:
    return meme_input
