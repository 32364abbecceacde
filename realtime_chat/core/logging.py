"""
Structured logging

Emits JSON log records in production and a readable format in debug mode.
Connection and user identifiers are carried in context variables so every
record written while a WebSocket connection is being served can be traced
back to it.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from realtime_chat.core.config import Settings, settings as default_settings

connection_id_var: ContextVar[Optional[str]] = ContextVar('connection_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'taskName', 'message', 'asctime',
}


class StructuredFormatter(logging.Formatter):
    """JSON log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        connection_id = connection_id_var.get()
        if connection_id:
            log_data["connection_id"] = connection_id

        user_id = user_id_var.get()
        if user_id:
            log_data["user_id"] = user_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        extra_data = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if extra_data:
            log_data["extra"] = extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config: Optional[Settings] = None):
    """Configure the root logger."""
    config = config or default_settings
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if config.debug:
        console_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    else:
        console_formatter = StructuredFormatter()

    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / "app.log", encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_dir / "error.log", encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(error_handler)

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_connection_context(connection_id: str, user_id: Optional[str] = None):
    connection_id_var.set(connection_id)
    if user_id:
        user_id_var.set(user_id)


def clear_connection_context():
    connection_id_var.set(None)
    user_id_var.set(None)


def log_websocket_event(
    logger: logging.Logger,
    event: str,
    user_id: str,
    room_id: Optional[str] = None,
    **extra
):
    """WebSocket event log"""
    logger.info(
        f"WebSocket {event} - User {user_id}" + (f" in Room {room_id}" if room_id else ""),
        extra={
            "event_type": "websocket",
            "event": event,
            "user_id": user_id,
            "room_id": room_id,
            **extra
        }
    )


def log_authentication_event(
    logger: logging.Logger,
    event: str,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    success: bool = True,
    **extra
):
    """Authentication event log"""
    log = logger.info if success else logger.warning
    log(
        f"Auth {event} - {'Success' if success else 'Failed'}",
        extra={
            "event_type": "authentication",
            "event": event,
            "user_id": user_id,
            "email": email,
            "success": success,
            **extra
        }
    )


def log_persistence_event(
    logger: logging.Logger,
    operation: str,
    collection: str,
    success: bool = True,
    **extra
):
    """Durable store operation log"""
    log = logger.debug if success else logger.warning
    log(
        f"Store {operation} on {collection} - {'ok' if success else 'failed'}",
        extra={
            "event_type": "persistence",
            "operation": operation,
            "collection": collection,
            "success": success,
            **extra
        }
    )
