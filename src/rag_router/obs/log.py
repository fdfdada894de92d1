"""Process logging configuration, powered by loguru.

Library modules simply do ``from loguru import logger``. Entry points (the
HTTP app factory, scripts) call `setup_logging()` once.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Route stdlib ``logging`` records (httpx, langchain, ...) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str = "INFO",
    *,
    log_file: str | None = None,
    intercept_stdlib: bool = True,
) -> None:
    """Configure loguru sinks for the current process.

    Args:
        level: Minimum log level (``DEBUG``, ``INFO``, ``WARNING``, ...).
        log_file: Optional path to a rotating log file.
        intercept_stdlib: Route stdlib ``logging`` through loguru as well.
    """

    logger.remove()
    logger.add(
        sys.stderr,
        format=_FORMAT,
        level=level.upper(),
        colorize=True,
        backtrace=True,
        diagnose=False,
    )
    if log_file:
        logger.add(
            log_file,
            format=_FORMAT,
            level=level.upper(),
            rotation="10 MB",
            retention="7 days",
        )
    if intercept_stdlib:
        logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    logger.debug("Logging configured - level={}", level)
