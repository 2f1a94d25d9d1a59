"""Structured logging for workloadwatch.

Every record is a single JSON line on stderr.  The cluster name is bound once
at startup so that logs from several clusters can be told apart downstream.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Client libraries that log every request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "kubernetes_asyncio", "aiohttp.access")


def setup_logging(level: str = "info", cluster_name: str = "") -> None:
    """Configure structlog JSON output to stderr and bind the cluster name."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if cluster_name:
        structlog.contextvars.bind_contextvars(cluster=cluster_name)

    library_level = max(log_level, logging.WARNING)
    logging.basicConfig(level=library_level, stream=sys.stderr, format="%(name)s %(levelname)s %(message)s")
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Return a logger bound to *component*."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
