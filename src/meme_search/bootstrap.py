"""Wires storage, the configured backend and the services from ``Settings``."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from meme_search.config import Settings
from meme_search.domain.model import SearchableRecord
from meme_search.observability.metrics import INDEX_RECORD_COUNT
from meme_search.query.parser import QueryParser
from meme_search.search.backend import FullTextBackend
from meme_search.search.maintenance import IndexMaintenance
from meme_search.search.memory_backend import MemoryBackend
from meme_search.search.ranker import Ranker
from meme_search.search.sqlite_fts import Fts5Backend
from meme_search.service_layer.catalog_service import CatalogService
from meme_search.service_layer.search_service import MemeSearchService
from meme_search.storage.database import Database
from meme_search.storage.meme_repository import MemeRepository
from meme_search.storage.migrations import migrate_to_latest


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler or CLI command needs."""

    settings: Settings
    database: Database
    repository: MemeRepository
    backend: FullTextBackend
    search: MemeSearchService
    catalog: CatalogService

    def close(self) -> None:
        self.database.close()


def build_backend(settings: Settings, database: Database) -> FullTextBackend:
    if settings.search_backend == "memory":
        return MemoryBackend(field_boosts=settings.get_field_boosts())
    return Fts5Backend(database, field_boosts=settings.get_field_boosts())


def build_services(settings: Settings, *, backend: FullTextBackend | None = None) -> Services:
    """Open the database, apply migrations and bring the index up to date.

    The memory backend starts empty in every process and is loaded from the
    primary store. An existing FTS5 table is kept current as a replica while the
    memory backend serves searches. Any index whose entry count differs from
    the stored record count (including a freshly created FTS5 table) is rebuilt.
    """
    database = Database(settings.db_path)
    applied = migrate_to_latest(database)
    if applied:
        logger.info("Applied migrations: %s", ", ".join(applied))

    repository = MemeRepository(database)
    backend = backend or build_backend(settings, database)
    replicas: list[FullTextBackend] = []
    if isinstance(backend, Fts5Backend):
        backend.ensure_schema()
    else:
        fts = Fts5Backend.existing(database, field_boosts=settings.get_field_boosts())
        if fts is not None:
            replicas.append(fts)
    maintenance = IndexMaintenance(backend, replicas=replicas)
    catalog = CatalogService(database, repository, maintenance)

    if isinstance(backend, MemoryBackend):
        loaded = backend.load(SearchableRecord.from_meme(meme) for meme in repository.iter_all())
        INDEX_RECORD_COUNT.labels(backend=backend.name).set(loaded)
        logger.info("Loaded %d memes into the in-memory index", loaded)

    stored = repository.count()
    drifted = maintenance.drifted(stored)
    if drifted:
        logger.warning(
            "Index out of sync with %d stored memes (%s); rebuilding",
            stored,
            ", ".join(f"{index.name}={index.count()}" for index in drifted),
        )
        catalog.reindex()

    parser = QueryParser(max_length=settings.max_query_length, max_depth=settings.max_query_depth)
    search = MemeSearchService(Ranker(backend, repository), parser=parser)
    return Services(
        settings=settings,
        database=database,
        repository=repository,
        backend=backend,
        search=search,
        catalog=catalog,
    )
