"""Unit tests for the meme-search command line."""

import json

import orjson
import pytest

from meme_search import cli
from meme_search.storage.database import Database
from meme_search.storage.migrations import LATEST_VERSION, current_version


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **_kwargs: None)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.sqlite3"


@pytest.fixture
def import_file(tmp_path, sample_memes):
    path = tmp_path / "memes.json"
    path.write_bytes(orjson.dumps([meme.model_dump(mode="json") for meme in sample_memes]))
    return path


def run(db_path, *args: str, backend: str = "memory") -> int:
    return cli.main(["--db", str(db_path), "--backend", backend, *args])


class TestCommands:
    def test_migrate(self, db_path):
        assert cli.main(["--db", str(db_path), "migrate"]) == 0

        database = Database(db_path)
        try:
            assert current_version(database) == LATEST_VERSION
        finally:
            database.close()

    def test_import_then_search(self, db_path, import_file, capsys):
        assert run(db_path, "import", str(import_file)) == 0
        capsys.readouterr()

        assert run(db_path, "search", "pikachu", "--limit", "5") == 0

        lines = capsys.readouterr().out.splitlines()
        ids = [json.loads(line)["id"] for line in lines]
        assert sorted(ids) == [1, 5]

    def test_import_reports_skipped_entries(self, db_path, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(
            json.dumps(
                [
                    {"path": "/a.jpg", "filename": "a.jpg", "category": "misc", "hash": "a"},
                    {"path": "/b.jpg"},
                    {"path": "/c.jpg", "filename": "c.jpg", "category": "misc", "hash": "a"},
                ]
            )
        )

        assert run(db_path, "import", str(path)) == 1
        assert run(db_path, "search", "") == 0
        assert len(capsys.readouterr().out.splitlines()) == 1

    def test_import_rejects_non_array(self, db_path, tmp_path):
        path = tmp_path / "object.json"
        path.write_text("{}")
        assert run(db_path, "import", str(path)) == 1
        assert run(db_path, "import", str(tmp_path / "missing.json")) == 1

    def test_syntax_error_points_at_position(self, db_path, capsys):
        assert run(db_path, "search", "a )") == 2

        err = capsys.readouterr().err.splitlines()
        assert err[0] == "error: Unexpected ')' at position 2"
        assert err[1] == "  a )"
        assert err[2] == "    ^"

    def test_non_positive_limit(self, db_path, capsys):
        assert run(db_path, "search", "x", "--limit", "0") == 2
        assert "--limit must be positive" in capsys.readouterr().err

    def test_clear_requires_confirmation(self, db_path, import_file, capsys):
        run(db_path, "import", str(import_file))

        assert run(db_path, "clear") == 1
        assert run(db_path, "clear", "--yes") == 0
        capsys.readouterr()

        run(db_path, "search", "")
        assert capsys.readouterr().out == ""

    def test_reindex(self, db_path, import_file):
        run(db_path, "import", str(import_file))
        assert run(db_path, "reindex") == 0

    def test_invalid_configuration(self, db_path, monkeypatch, capsys):
        monkeypatch.setenv("MEME_SEARCH_RESULT_LIMIT", "0")

        assert run(db_path, "search", "x") == 2
        assert "Invalid configuration" in capsys.readouterr().err

    def test_sqlite_backend_persists_index(self, db_path, import_file, capsys, require_fts5):
        assert run(db_path, "import", str(import_file), backend="sqlite") == 0
        capsys.readouterr()

        assert run(db_path, "search", "keywords:dog", backend="sqlite") == 0

        ids = {json.loads(line)["id"] for line in capsys.readouterr().out.splitlines()}
        assert ids == {3, 5}


class TestParser:
    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_backend_choices(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--backend", "elastic", "migrate"])


class TestBackendSwitching:
    def test_memory_import_reaches_sqlite_index(self, db_path, tmp_path, sample_memes, capsys, require_fts5):
        first, second = tmp_path / "first.json", tmp_path / "second.json"
        first.write_bytes(orjson.dumps([sample_memes[0].model_dump(mode="json")]))
        second.write_bytes(orjson.dumps([sample_memes[4].model_dump(mode="json")]))

        assert run(db_path, "import", str(first), backend="sqlite") == 0
        assert run(db_path, "import", str(second), backend="memory") == 0
        capsys.readouterr()

        assert run(db_path, "search", "pikachu", backend="sqlite") == 0

        hashes = {json.loads(line)["hash"] for line in capsys.readouterr().out.splitlines()}
        assert hashes == {sample_memes[0].hash, sample_memes[4].hash}
