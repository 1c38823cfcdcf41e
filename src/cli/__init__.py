# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line tools for operators and developers who need to look at the
# persisted cache outside of the app:
#
#   CACHE (cache.py)
#      Stats, get, remove, clear and purge-expired against the SQLite
#      durable tier.  Uses the same CacheService the app uses, so TTL and
#      namespace rules are identical.
#
# Architecture Notes:
#   - argparse for argument parsing, asyncio.run() per subcommand.
#   - Each command builds its own CacheService rather than the full
#     DataLayer: no remote store or listeners are needed here.
# =============================================================================

"""CLI tools for the data layer.

- ``python -m src.cli.cache`` - inspect and maintain the persisted cache.
"""
