"""Logging configuration using loguru.

Intercepts stdlib logging so that kopf, uvicorn, the kubernetes client and
urllib3 all flow through loguru with a unified format.  kopf's per-object
messages arrive on ``kopf.objects`` and keep the object in the message.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

# Libraries that log every request or watch event below WARNING.
_NOISY_LOGGERS = ("uvicorn.access", "kubernetes", "urllib3", "aiohttp.access")


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Map stdlib level name -> loguru level
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

    Call this once at process startup (before uvicorn starts).  The kopf
    thread logs through the same sink.
    """
    level = level.upper()

    # Replace loguru's default stderr handler with ours
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<yellow>{thread.name}</yellow> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    # Route stdlib logging (kopf, uvicorn, kubernetes) into loguru
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    # Quiet down request- and event-level chatter
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
