"""
Connection correlation for log records.

Each relay connection runs in its own task; binding the connection id in a
ContextVar at the start of that task tags every record the task emits.
"""

import logging
from contextvars import ContextVar

# Context variable for the current connection id (task-local)
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_connection_id() -> str:
    """Get the connection id bound to the current task."""
    return connection_id_var.get()


def bind_connection_id(connection_id: str) -> None:
    """Bind a connection id to the current task context."""
    connection_id_var.set(connection_id)


class ConnectionIdFilter(logging.Filter):
    """
    Logging filter that adds connection_id to log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.connection_id = get_connection_id() or "-"
        return True
