"""Catalog mutations with synchronous index maintenance.

Each operation opens one write transaction, mutates the primary store and
runs the matching index hook inside it. If the hook raises, the record
change is rolled back together with the index change.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from meme_search.domain.model import Meme, MemeInput
from meme_search.search.maintenance import IndexMaintenance
from meme_search.storage.database import Database
from meme_search.storage.meme_repository import MemeRepository


logger = logging.getLogger(__name__)


class CatalogService:
    """Adds, updates and deletes memes while keeping the index consistent."""

    def __init__(self, database: Database, repository: MemeRepository, maintenance: IndexMaintenance) -> None:
        self.database = database
        self.repository = repository
        self.maintenance = maintenance

    def add(self, meme: MemeInput) -> Meme:
        with self.database.transaction() as txn:
            created = self.repository.insert(txn, meme)
            self.maintenance.on_create(txn, created)
        logger.info("Added meme %s (%s)", created.id, created.filename)
        return created

    def update(self, record_id: int, fields: Mapping[str, Any]) -> Meme:
        """Apply ``fields`` to a meme and reindex it.

        Raises:
            RecordNotFoundError: If the meme does not exist
            ValueError: If ``fields`` names a field that cannot change
            IndexConsistencyError: If the index could not be updated (nothing is changed)
        """
        with self.database.transaction() as txn:
            _, updated = self.repository.update_fields(txn, record_id, fields)
            self.maintenance.on_update(txn, updated)
        logger.info("Updated meme %s fields: %s", record_id, ", ".join(sorted(fields)))
        return updated

    def delete(self, record_id: int) -> Meme:
        with self.database.transaction() as txn:
            removed = self.repository.delete(txn, record_id)
            self.maintenance.on_delete(txn, record_id)
        logger.info("Deleted meme %s", record_id)
        return removed

    def clear(self) -> int:
        """Delete every meme and empty the index."""
        with self.database.transaction() as txn:
            removed = self.repository.delete_all(txn)
            self.maintenance.on_clear(txn)
        logger.info("Cleared catalog (%d memes)", removed)
        return removed

    def reindex(self) -> int:
        """Rebuild the index from the primary store."""
        with self.database.transaction() as txn:
            return self.maintenance.rebuild(txn, self.repository.iter_all)
