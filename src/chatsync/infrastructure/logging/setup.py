"""Logging setup using structlog over the standard logging module."""

import logging
import sys

import structlog
from structlog.stdlib import BoundLogger

from chatsync.config.models import LoggingConfig


def _build_renderer(format: str) -> structlog.typing.Processor:
    if format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: LoggingConfig) -> None:
    """Route structlog and standard logging records to one stdout handler.

    Third-party loggers (aiohttp, LiteLLM, sqlalchemy) go through the same
    formatter, so every line shares one format. ``config.loggers`` sets
    per-logger levels on top of the root level.

    Args:
        config: Logging configuration.
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    root_logger.addHandler(handler)

    for name, level in config.loggers.items():
        logging.getLogger(name).setLevel(getattr(logging, level))

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _build_renderer(config.format),
            ],
        )
    )


def get_logger(name: str | None = None, **initial_values: object) -> BoundLogger:
    """Get a logger, optionally bound to initial key/value pairs.

    Args:
        name: Logger name, e.g. "pipeline" or __name__.
        **initial_values: Context bound to every line of this logger.
    """
    logger: BoundLogger = structlog.stdlib.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger
