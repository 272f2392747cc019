"""Logging for trackshelf: structlog on top of stdlib handlers.

``server.log`` receives every event rendered for humans; ``imports.log``
receives only ``trackshelf.importer`` events as one JSON object per line,
so import history can be grepped or loaded without parsing prose.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

SERVER_LOG = "server.log"
IMPORTS_LOG = "imports.log"
IMPORT_LOGGER = "trackshelf.importer"

_ROTATE_BYTES = 10 * 1024 * 1024
_ROTATE_KEEP = 5
_QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore", "aiosqlite")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_PRE_CHAIN)


def _file_handler(path: Path, renderer: structlog.types.Processor, only: str | None = None) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=_ROTATE_BYTES, backupCount=_ROTATE_KEEP, encoding="utf-8")
    handler.setFormatter(_formatter(renderer))
    if only:
        handler.addFilter(logging.Filter(only))
    return handler


def _log_uncaught(exc_type, exc_value, exc_tb) -> None:  # noqa: ANN001
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    logging.getLogger("trackshelf").critical("uncaught_exception", exc_info=(exc_type, exc_value, exc_tb))


def setup_logging(log_level: str = "info", log_dir: Path | None = None, *, console: bool = False) -> None:
    """Route structlog through the stdlib root logger.

    With *log_dir* set, the two rotating files are attached. With *console*
    set, events are also printed to stderr. With neither, the root logger has
    no handlers, which keeps tests quiet.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(log_dir / SERVER_LOG, structlog.dev.ConsoleRenderer(colors=False)))
        handlers.append(_file_handler(log_dir / IMPORTS_LOG, structlog.processors.JSONRenderer(), only=IMPORT_LOGGER))
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
        handlers.append(stream)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    sys.excepthook = _log_uncaught
