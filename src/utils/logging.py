"""Structured logging setup for the data layer, using structlog.

One shared processor chain (context vars, log level, timestamps, stack info)
feeds a coloured ConsoleRenderer during development or a JSONRenderer in
production.  ``APP_ENV=production`` or ``json_output=True`` selects JSON.

Log lines go to stdout by default.  Command-line tools whose stdout carries
data (``python -m src.cli.cache get`` prints JSON) call
``configure_logging("WARNING", to_stderr=True)`` instead.

Loggers are not cached on first use: module-level proxies such as the one in
``sqlite_kv_store`` re-read the configuration on every call, so a later
``configure_logging`` call also governs loggers that have already logged.
The output stream is likewise looked up per write rather than captured here.

Standard-library ``logging`` (``aiosqlite``, remote SDKs) is routed through
the same formatter and stream.
"""

import logging
import os
import sys
from typing import TextIO

import structlog


def _output_stream(to_stderr: bool) -> TextIO:
    return sys.stderr if to_stderr else sys.stdout


class _LazyStreamHandler(logging.StreamHandler):
    """StreamHandler writing to whatever sys.stdout / sys.stderr is now."""

    def __init__(self, to_stderr: bool) -> None:
        super().__init__()
        self._to_stderr = to_stderr

    @property
    def stream(self) -> TextIO:  # type: ignore[override]
        return _output_stream(self._to_stderr)

    @stream.setter
    def stream(self, value: TextIO) -> None:
        pass


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    to_stderr: bool = False,
) -> structlog.BoundLogger:
    """Configure structlog and stdlib logging for this process.

    Safe to call more than once; the last call wins for every logger.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  When False, JSON is still used if
                     ``APP_ENV`` is ``"production"``.
        to_stderr: Write log lines to stderr instead of stdout.

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"
    level = logging.getLevelName(log_level.upper())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        # No colour codes in a redirected stderr.
        renderer = structlog.dev.ConsoleRenderer(colors=not to_stderr)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        # Cache hits and misses log at DEBUG; filtered before any processor runs.
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=lambda *args: structlog.PrintLogger(_output_stream(to_stderr)),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = _LazyStreamHandler(to_stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*.

    Configures logging with defaults on first use if nobody has yet.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
