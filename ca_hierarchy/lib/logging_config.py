"""JSON logging configuration for CA hierarchy scripts."""

import logging
import os

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "ca_hierarchy"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter limited to timestamp, level, message, exc_info, funcName, lineno."""

    allowed_fields = frozenset(
        {
            "timestamp",
            "level",
            "message",
            "exc_info",
            "funcName",
            "lineno",
        }
    )

    def add_fields(self, log_record, record, message_dict):
        """Add standard fields, then drop everything outside allowed_fields.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in self.allowed_fields]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    """Initialize and configure the package logger.

    Library modules log through ``logging.getLogger(__name__)``; their records
    propagate up to this logger and share its JSON handler.

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Prevent duplicate handlers if module reloaded
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = CustomJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)

    logger.setLevel(os.environ.get("CA_LOG_LEVEL", "INFO").upper())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


LOGGER = _setup_logger()


def warn_not_for_production(validity_days: int, suppress: bool = False) -> None:
    """Log the standard warning that generated certificates are test-only."""
    if suppress:
        return
    LOGGER.warning(
        "Certificates generated by these scripts are not for production "
        "(they use hard-coded default passwords) and expire in %d days. "
        "Use your official, secure mechanisms for production certificates.",
        validity_days,
    )
