"""Command line entry point: ``meme-search <command>``."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

import orjson
from pydantic import ValidationError

from meme_search.bootstrap import Services, build_services
from meme_search.config import Settings, load_settings
from meme_search.domain.model import MemeInput
from meme_search.errors import MemeSearchError, QuerySyntaxError
from meme_search.observability import configure_logging
from meme_search.storage.database import Database
from meme_search.storage.migrations import migrate_to_latest


logger = logging.getLogger(__name__)


def _cmd_migrate(settings: Settings, _: argparse.Namespace) -> int:
    database = Database(settings.db_path)
    try:
        applied = migrate_to_latest(database)
    finally:
        database.close()
    if applied:
        logger.info("Applied %d migrations", len(applied))
    else:
        logger.info("Database is up to date")
    return 0


def _cmd_search(services: Services, args: argparse.Namespace) -> int:
    limit = args.limit or services.settings.result_limit
    try:
        hits = services.search.search(args.query, limit=limit)
    except QuerySyntaxError as exc:
        print(f"error: {exc}", file=sys.stderr)
        print(f"  {args.query}", file=sys.stderr)
        print(f"  {' ' * exc.position}^", file=sys.stderr)
        return 2
    for hit in hits:
        payload = hit.meme.model_dump(mode="json")
        payload["score"] = hit.score
        sys.stdout.write(orjson.dumps(payload).decode("utf-8") + "\n")
    return 0


def _cmd_import(services: Services, args: argparse.Namespace) -> int:
    """Add memes from a JSON array of objects with the ``MemeInput`` fields."""
    path = Path(args.file)
    try:
        entries = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        logger.error("Cannot read %s: %s", path, exc)
        return 1
    if not isinstance(entries, list):
        logger.error("%s must contain a JSON array", path)
        return 1

    added = failed = 0
    for position, entry in enumerate(entries):
        try:
            services.catalog.add(MemeInput.model_validate(entry))
            added += 1
        except (ValidationError, MemeSearchError) as exc:
            failed += 1
            logger.warning("Skipping entry %d: %s", position, exc)
    logger.info("Imported %d memes (%d skipped)", added, failed)
    return 0 if not failed else 1


def _cmd_reindex(services: Services, _: argparse.Namespace) -> int:
    count = services.catalog.reindex()
    logger.info("Reindexed %d memes", count)
    return 0


def _cmd_clear(services: Services, args: argparse.Namespace) -> int:
    if not args.yes:
        logger.error("Refusing to delete every meme without --yes")
        return 1
    removed = services.catalog.clear()
    logger.info("Deleted %d memes", removed)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meme-search", description="Search and maintain the meme catalog.")
    parser.add_argument("--db", dest="db_path", help="SQLite database file (overrides MEME_SEARCH_DB_PATH).")
    parser.add_argument(
        "--backend",
        choices=("sqlite", "memory"),
        help="Full-text backend (overrides MEME_SEARCH_SEARCH_BACKEND).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("migrate", help="Apply pending schema migrations.")

    search = commands.add_parser("search", help="Run a query and print matching memes as JSON lines.")
    search.add_argument("query", help="Query string; empty lists the most recent memes.")
    search.add_argument("--limit", type=int, help="Maximum number of results.")

    import_cmd = commands.add_parser("import", help="Add memes from a JSON file.")
    import_cmd.add_argument("file", help="JSON array of meme objects.")

    commands.add_parser("reindex", help="Rebuild the full-text index from the database.")

    clear = commands.add_parser("clear", help="Delete every meme and empty the index.")
    clear.add_argument("--yes", action="store_true", help="Confirm deletion.")

    commands.add_parser("serve", help="Run the HTTP server.")
    return parser


_SERVICE_COMMANDS = {
    "search": _cmd_search,
    "import": _cmd_import,
    "reindex": _cmd_reindex,
    "clear": _cmd_clear,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    overrides: dict[str, object] = {}
    if args.db_path:
        overrides["db_path"] = args.db_path
    if args.backend:
        overrides["search_backend"] = args.backend
    try:
        settings = load_settings(**overrides)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    configure_logging(level=settings.log_level, json_output=settings.log_json)

    if args.command == "migrate":
        return _cmd_migrate(settings, args)
    if args.command == "serve":
        from meme_search.app import serve

        serve(settings)
        return 0

    if args.command == "search" and args.limit is not None and args.limit <= 0:
        print("error: --limit must be positive", file=sys.stderr)
        return 2

    try:
        services = build_services(settings)
    except MemeSearchError as exc:
        logger.error("Cannot open catalog: %s", exc)
        return 1
    try:
        return _SERVICE_COMMANDS[args.command](services, args)
    except MemeSearchError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    raise SystemExit(main())
