"""structlog configuration shared by the API, the CLI and the tests.

One processor chain, two renderers: coloured console output while
developing, JSON lines when ``APP_ENV=production`` (or when the caller asks
for JSON).  Records emitted through the standard ``logging`` module by
httpx, redis, aiosqlite or uvicorn are routed through the same chain so a
deployment sees a single format.

All output goes to stderr; the CLI prints command results on stdout.
"""

import logging
import os
import sys

import structlog

from market_intel.utils.errors import ConfigurationError

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Chatty at INFO; their request lines duplicate our own provider logs.
_QUIET_LIBRARIES = ("httpx", "httpcore", "aiosqlite")


def _resolve_level(log_level: str) -> int:
    name = str(log_level).strip().upper()
    if name not in _LEVELS:
        raise ConfigurationError(
            message=f"Unknown log level {log_level!r}; expected one of {', '.join(_LEVELS)}"
        )
    return getattr(logging, name)


def configure_logging(log_level: str = "INFO", json_output: bool | None = None) -> structlog.BoundLogger:
    """(Re)configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
        json_output: ``True``/``False`` forces the renderer; ``None`` picks
            JSON only when ``APP_ENV`` is ``production``.

    Raises:
        ConfigurationError: If *log_level* is not a known level name.
    """
    level = _resolve_level(log_level)
    if json_output is None:
        json_output = os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: structlog.types.Processor
    if json_output:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Module-level loggers must pick up the CLI's later reconfiguration.
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
