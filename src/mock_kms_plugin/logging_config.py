"""Loguru logging configuration for the plugin.

Call ``setup_logging()`` once at process startup. Every record carries the
runtime name and the plugin address as ``extra`` fields, so lines from
several plugin instances in one integration run can be told apart.
Records from grpc's stdlib loggers are forwarded into the same sink.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

from mock_kms_plugin.api import RUNTIME_NAME

GRPC_LOGGER = "grpc"

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[address]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class GrpcLogHandler(logging.Handler):
    """Forward grpc's stdlib records to loguru, keeping their origin."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        def _origin(loguru_record):
            loguru_record.update(name=record.name, function=record.funcName, line=record.lineno)

        logger.patch(_origin).opt(exception=record.exc_info).log(level, record.getMessage())


def setup_logging(*, level: str = "INFO", json: bool = False, address: str = "-") -> None:
    """Configure loguru and route grpc's own logging through it.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ...). Also applied
            to the ``grpc`` stdlib logger.
        json: If True, emit serialized JSON records to stderr.
        address: Listen address bound into every record (``extra.address``).
    """
    level = level.upper()
    sink = {"sink": sys.stderr, "level": level}
    if json:
        sink["serialize"] = True
    else:
        sink.update(format=_TEXT_FORMAT, colorize=True)

    logger.configure(
        handlers=[sink],
        extra={"runtime": RUNTIME_NAME, "address": address},
    )

    grpc_logger = logging.getLogger(GRPC_LOGGER)
    grpc_logger.handlers = [GrpcLogHandler()]
    grpc_logger.setLevel(level)
    grpc_logger.propagate = False
