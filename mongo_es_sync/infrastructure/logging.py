"""Structured logging setup with correlation ID and collection context."""

import logging
import sys
import uuid
from contextvars import ContextVar

# Context variable for correlation ID (one per replication run)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Context variable for the collection handled by the current task
collection_var: ContextVar[str] = ContextVar("collection", default="-")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate a new one.

    Returns:
        Correlation ID string (UUID)
    """
    corr_id = correlation_id_var.get()
    if corr_id is None:
        corr_id = str(uuid.uuid4())
        correlation_id_var.set(corr_id)
    return corr_id


def set_correlation_id(corr_id: str) -> None:
    """
    Set correlation ID for current context.

    Args:
        corr_id: Correlation ID string
    """
    correlation_id_var.set(corr_id)


def set_collection(collection: str) -> None:
    """Tag log records emitted by the current task with ``collection``."""
    collection_var.set(collection)


class ReplicationContextFilter(logging.Filter):
    """Logging filter that adds correlation ID and collection to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation_id and collection to log record."""
        record.correlation_id = get_correlation_id()  # type: ignore[attr-defined]
        if not hasattr(record, "collection"):
            record.collection = collection_var.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: int = logging.INFO, verbose: bool = False) -> None:
    """
    Configure structured logging with correlation ID support.

    Args:
        level: Logging level (default: INFO)
        verbose: If True, show driver logs at INFO level. If False, raise them to WARNING.
    """
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s correlation_id=%(correlation_id)s "
        "collection=%(collection)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)
    handler.addFilter(ReplicationContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # elasticsearch-py logs every request through elastic_transport;
    # pymongo (used by motor) logs command/heartbeat chatter
    driver_loggers = [
        "elasticsearch",
        "elastic_transport",
        "elastic_transport.transport",
        "pymongo",
    ]

    for logger_name in driver_loggers:
        driver_logger = logging.getLogger(logger_name)
        driver_logger.setLevel(logging.INFO if verbose else logging.WARNING)
