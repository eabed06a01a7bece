"""Primary store: SQLite connections, schema migrations and the meme repository."""

from meme_search.storage.database import Database, Transaction
from meme_search.storage.meme_repository import MemeRepository
from meme_search.storage.migrations import LATEST_VERSION, migrate_to_latest


__all__ = ["LATEST_VERSION", "Database", "MemeRepository", "Transaction", "migrate_to_latest"]
