"""CLI for inspecting and maintaining the persisted cache.

Usage::

    # Show counts for the durable cache
    python -m src.cli.cache stats

    # Print one cached value (as JSON) if present and not expired
    python -m src.cli.cache get events_all

    # Drop one key, or every cache key (other stored keys are kept)
    python -m src.cli.cache remove event_details_abc123
    python -m src.cli.cache clear

    # Delete expired or unreadable durable entries
    python -m src.cli.cache purge-expired

The database path and key prefix default to the values in Settings
(``CACHE_DB_PATH`` / ``CACHE_NAMESPACE_PREFIX``) and can be overridden with
``--db-path`` / ``--prefix``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from src.config.settings import Settings
from src.providers.storage.sqlite_kv_store import SQLiteKeyValueStore
from src.services.cache_service import CacheService
from src.utils.errors import StorageError
from src.utils.logging import configure_logging


def _suppress_logs() -> None:
    """Keep stdout for command output (``get`` prints JSON there)."""
    configure_logging("WARNING", to_stderr=True)


def _build_cache(args: argparse.Namespace) -> tuple[CacheService, SQLiteKeyValueStore]:
    settings = Settings()
    store = SQLiteKeyValueStore(args.db_path or settings.cache_db_path)
    cache = CacheService(store, namespace_prefix=args.prefix or settings.cache_namespace_prefix)
    return cache, store


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_stats(args: argparse.Namespace) -> int:
    cache, store = _build_cache(args)
    try:
        keys = await store.list_keys()
    except StorageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    prefix = cache.get_stats()["namespace_prefix"]
    owned = [k for k in keys if k.startswith(prefix)]
    print(f"Database:      {args.db_path or Settings().cache_db_path}")
    print(f"Prefix:        {prefix}")
    print(f"Cache entries: {len(owned)}")
    print(f"Other keys:    {len(keys) - len(owned)}")
    return 0


async def _handle_get(args: argparse.Namespace) -> int:
    cache, _ = _build_cache(args)
    value = await cache.get(args.key)
    if value is None:
        print(f"{args.key}: not cached", file=sys.stderr)
        return 1
    print(json.dumps(value, indent=2, default=str))
    return 0


async def _handle_remove(args: argparse.Namespace) -> int:
    cache, _ = _build_cache(args)
    await cache.remove(args.key)
    print(f"Removed {args.key}")
    return 0


async def _handle_clear(args: argparse.Namespace) -> int:
    cache, _ = _build_cache(args)
    await cache.clear()
    print("Cache cleared")
    return 0


async def _handle_purge(args: argparse.Namespace) -> int:
    cache, _ = _build_cache(args)
    removed = await cache.purge_expired_storage()
    print(f"Purged {removed} expired entries")
    return 0


_HANDLERS = {
    "stats": _handle_stats,
    "get": _handle_get,
    "remove": _handle_remove,
    "clear": _handle_clear,
    "purge-expired": _handle_purge,
}


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the cache CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.cache",
        description="Inspect and maintain the persisted data-layer cache.",
    )
    parser.add_argument("--db-path", help="SQLite cache database (default: CACHE_DB_PATH)")
    parser.add_argument("--prefix", help="Cache key prefix (default: CACHE_NAMESPACE_PREFIX)")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("stats", help="Show entry counts")
    get_parser = subparsers.add_parser("get", help="Print a cached value")
    get_parser.add_argument("key", help="Cache key, without the prefix")
    remove_parser = subparsers.add_parser("remove", help="Delete one cache key")
    remove_parser.add_argument("key", help="Cache key, without the prefix")
    subparsers.add_parser("clear", help="Delete every cache key")
    subparsers.add_parser("purge-expired", help="Delete expired durable entries")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the cache CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _suppress_logs()

    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(handler(args)))


if __name__ == "__main__":
    main()
