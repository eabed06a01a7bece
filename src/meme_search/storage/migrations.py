"""Schema migrations for the primary store.

The schema version lives in ``PRAGMA user_version``; each migration runs in
its own transaction and bumps the version on success. The full-text table
is owned by the FTS5 backend (see ``meme_search.search.sqlite_fts``).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from meme_search.errors import StorageError
from meme_search.storage.database import Database


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="001_initial_schema",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS memes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL,
                filename TEXT NOT NULL,
                category TEXT NOT NULL,
                hash TEXT NOT NULL UNIQUE,
                text TEXT,
                description TEXT,
                keywords TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_memes_hash ON memes(hash)",
            "CREATE INDEX IF NOT EXISTS idx_memes_category ON memes(category)",
        ),
    ),
    Migration(
        version=2,
        name="002_recency_index",
        statements=("CREATE INDEX IF NOT EXISTS idx_memes_created_at ON memes(created_at DESC, id DESC)",),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def current_version(database: Database) -> int:
    return int(database.connection().execute("PRAGMA user_version").fetchone()[0])


def migrate_to_latest(database: Database) -> list[str]:
    """Apply pending migrations in order.

    Returns:
        Names of the migrations that were applied

    Raises:
        StorageError: If a migration fails; earlier migrations stay applied
    """
    applied: list[str] = []
    version = current_version(database)
    for migration in MIGRATIONS:
        if migration.version <= version:
            continue
        try:
            with database.transaction() as txn:
                for statement in migration.statements:
                    txn.conn.execute(statement)
                txn.conn.execute(f"PRAGMA user_version = {migration.version}")
        except Exception as exc:
            logger.error('Failed to execute migration "%s"', migration.name)
            raise StorageError(f"Migration {migration.name} failed: {exc}") from exc
        logger.info('Migration "%s" was executed successfully', migration.name)
        applied.append(migration.name)
    return applied
