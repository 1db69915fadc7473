"""structlog setup shared by every module."""

import logging

import structlog

from app.config import LOG_LEVEL

_level = getattr(logging, LOG_LEVEL, logging.INFO)
if not isinstance(_level, int):
    _level = logging.INFO

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_level),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
