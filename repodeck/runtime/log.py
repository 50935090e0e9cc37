"""Logging configuration using loguru.

Intercepts stdlib logging so that uvicorn, sqlalchemy, alembic, etc. all
flow through loguru with a unified format.

Workspace operations run inside ``logger.contextualize(workspace=...)`` so
every git command logged during a provision or delete carries the
``repo#branch`` tag of the request that issued it.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[workspace]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk the call stack so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup (before uvicorn starts, or at the top
    of a CLI command).
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"workspace": "-"})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
