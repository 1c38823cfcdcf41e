"""Allow ``python -m src.cli`` execution (runs the cache CLI)."""

from src.cli.cache import main

main()
