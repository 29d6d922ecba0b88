import logging
from typing import Any

import structlog


def configure_logging(level: int | str = logging.INFO, stack_name: str | None = None) -> None:
    """
    Route structlog through standard logging as JSON lines.

    ``stack_name`` is bound as a context variable so every event emitted
    while declaring, finalizing or synthesizing carries the stack it
    belongs to.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if stack_name:
        structlog.contextvars.bind_contextvars(stack=stack_name)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format="%(message)s")


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger carrying builder fields (account, region) on every event."""

    logger = structlog.get_logger()
    return logger.bind(**kwargs)
