"""Unit tests for connection handling, transactions and migrations."""

import sqlite3
import threading

import pytest

from meme_search.errors import StorageError
from meme_search.storage.database import Database
from meme_search.storage.migrations import LATEST_VERSION, MIGRATIONS, current_version, migrate_to_latest


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "nested" / "catalog.sqlite3")
    yield db
    db.close()


class TestConnections:
    def test_creates_parent_directory_and_enables_wal(self, database, tmp_path):
        conn = database.connection()

        assert (tmp_path / "nested").is_dir()
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_connection_is_per_thread(self, database):
        main = database.connection()
        seen = []

        thread = threading.Thread(target=lambda: seen.append(database.connection()))
        thread.start()
        thread.join()

        assert database.connection() is main
        assert seen[0] is not main

    def test_close_discards_connections(self, database):
        first = database.connection()
        database.close()

        with pytest.raises(sqlite3.ProgrammingError):
            first.execute("SELECT 1")
        assert database.connection() is not first

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError, match="Cannot open database"):
            Database(blocker / "catalog.sqlite3").connection()


class TestTransactions:
    def test_commit(self, database):
        with database.transaction() as txn:
            txn.conn.execute("CREATE TABLE t (x INTEGER)")
            txn.conn.execute("INSERT INTO t VALUES (1)")

        assert database.connection().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1

    def test_rollback_on_error_runs_hooks_in_reverse(self, database):
        with database.transaction() as txn:
            txn.conn.execute("CREATE TABLE t (x INTEGER)")
        calls = []

        with pytest.raises(ValueError), database.transaction() as txn:
            txn.conn.execute("INSERT INTO t VALUES (1)")
            txn.on_rollback(lambda: calls.append("first"))
            txn.on_rollback(lambda: calls.append("second"))
            raise ValueError("boom")

        assert calls == ["second", "first"]
        assert database.connection().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0

    def test_failing_hook_does_not_stop_others(self, database):
        calls = []

        def _broken():
            raise RuntimeError("hook failed")

        with pytest.raises(ValueError), database.transaction() as txn:
            txn.on_rollback(lambda: calls.append("ran"))
            txn.on_rollback(_broken)
            raise ValueError("boom")

        assert calls == ["ran"]

    def test_hooks_do_not_run_on_commit(self, database):
        calls = []
        with database.transaction() as txn:
            txn.on_rollback(lambda: calls.append("ran"))

        assert calls == []

    def test_nested_transaction_is_rejected(self, database):
        with database.transaction():
            with pytest.raises(StorageError, match="Nested"):
                with database.transaction():
                    pass


class TestMigrations:
    def test_fresh_database_migrates_to_latest(self, database):
        applied = migrate_to_latest(database)

        assert applied == [migration.name for migration in MIGRATIONS]
        assert current_version(database) == LATEST_VERSION
        indexes = {
            row[0]
            for row in database.connection().execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
        }
        assert {"idx_memes_hash", "idx_memes_category", "idx_memes_created_at"} <= indexes

    def test_migrations_are_idempotent(self, database):
        migrate_to_latest(database)
        assert migrate_to_latest(database) == []

    def test_partial_upgrade_applies_only_pending(self, database):
        conn = database.connection()
        for statement in MIGRATIONS[0].statements:
            conn.execute(statement)
        conn.execute("PRAGMA user_version = 1")

        assert migrate_to_latest(database) == [MIGRATIONS[1].name]

    def test_failed_migration_raises_storage_error(self, database):
        database.connection().execute("CREATE TABLE memes (id INTEGER)")

        with pytest.raises(StorageError, match="001_initial_schema"):
            migrate_to_latest(database)
        assert current_version(database) == 0
