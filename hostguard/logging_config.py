"""
Structured logging configuration for hostguard.

Provides JSON-formatted or plain text logs with a transaction_id field for
correlating every record written while a transaction is running.

Environment Variables:
    HOSTGUARD_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    HOSTGUARD_LOG_FORMAT: Log format (json, text) - default: text

Usage:
    from hostguard.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, transaction_id="tx-20260101T000000-a1b2c3")
    logger.info("Operation recorded")
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TransactionIDFilter(logging.Filter):
    """
    Logging filter that adds transaction_id to all log records.

    Ensures all records have the field, even if not logged via get_logger().
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "transaction_id"):
            record.transaction_id = "-"  # type: ignore
        return True


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Arguments override HOSTGUARD_LOG_LEVEL / HOSTGUARD_LOG_FORMAT.
    Logs go to stderr so command output on stdout stays machine-readable.
    """
    log_level = (level or os.getenv("HOSTGUARD_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("HOSTGUARD_LOG_FORMAT", "text")).lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(LEVELS.get(log_level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(TransactionIDFilter())

    if fmt == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(transaction_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [tx=%(transaction_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str, transaction_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger that stamps records with a transaction id.

    Args:
        name: Logger name (typically __name__)
        transaction_id: Transaction being worked on

    Returns:
        LoggerAdapter with transaction_id in extra fields
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"transaction_id": transaction_id or "-"})
