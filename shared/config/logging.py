"""
Centralized structured logging for the relay.

Production emits one JSON object per line; development gets a colored,
human-readable line. Loggers returned by get_logger() accept structured
fields as keyword arguments:

    logger.info("Client joined topic", topic="room-a", subscribers=2)

Records emitted inside a connection task carry that connection's id
(see shared.infrastructure.correlation). Envelope payloads are never logged.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import Settings, settings as default_settings

SERVICE_NAME = "signal-relay"


def _connection_id(record: logging.LogRecord) -> str | None:
    """Connection id stamped by ConnectionIdFilter, or None outside a connection."""
    value = getattr(record, "connection_id", None)
    return value if value and value != "-" else None


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record, for log aggregation.

    Keys: timestamp, level, service, logger, message, and when present
    connection_id, data (keyword fields), exception, source.
    """

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self._include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection_id = _connection_id(record)
        if connection_id:
            entry["connection_id"] = connection_id

        fields = _fields(record)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self._include_source:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output: time, level, [connection], logger, message, fields."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]

        connection_id = _connection_id(record)
        if connection_id:
            parts.append(f"{self.DIM}[{connection_id[:8]}]{self.RESET}")

        parts.append(f"{record.name}: {record.getMessage()}")

        fields = _fields(record)
        if fields:
            parts.append(" ".join(f"{key}={value}" for key, value in fields.items()))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Custom logger that supports structured data passed as keyword arguments.
    """

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        extra: dict | None = None,
        **kwargs: Any,
    ) -> None:
        """Log with optional structured data."""
        if not self.isEnabledFor(level):
            return
        if extra is None:
            extra = {}
        extra["extra_data"] = kwargs if kwargs else None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.ERROR, msg, args, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.CRITICAL, msg, args, **kwargs)


# Set custom logger class
logging.setLoggerClass(StructuredLogger)


def setup_logging(config: Settings | None = None) -> None:
    """
    Configure logging for the relay.
    Call this once at process startup.
    """
    # Import here to avoid circular imports
    from shared.infrastructure.correlation import ConnectionIdFilter

    config = config or default_settings
    log_level = logging.DEBUG if config.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(ConnectionIdFilter())

    if config.environment == "production":
        formatter: logging.Formatter = StructuredFormatter(include_source=config.debug)
    else:
        formatter = DevelopmentFormatter()

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    # Reduce noise from the transport library (handshake failures, keepalive)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Client joined topic", topic="room-a", subscribers=2)
        logger.error("Dispatcher crashed", error=str(e), exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


# Pre-configured loggers
relay_logger = get_logger("signal_relay")

# Dedicated security audit logger
security_audit_logger = get_logger("security.audit")


def audit_ws_connection(
    event_type: str,
    path: str | None = None,
    origin: str | None = None,
    remote_address: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Log WebSocket admission and lifecycle security events.

    Args:
        event_type: Type of event (CONNECT, DISCONNECT, REJECTED)
        path: Request path of the upgrade request
        origin: Origin header value
        remote_address: Peer address
        reason: Reason for event (especially for rejections)
        **extra: Additional context data
    """
    level = logging.WARNING if event_type == "REJECTED" else logging.INFO
    security_audit_logger._log_with_data(
        level,
        f"WS_AUDIT: {event_type}",
        args=(),
        event_type=event_type,
        path=path,
        origin=origin,
        remote_address=remote_address,
        reason=reason,
        **extra,
    )
