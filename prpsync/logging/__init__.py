"""
prpsync Logging System.

Structured JSONL logs for:
- Model calls (prompt/response previews, tokens, latency)
- Tool invocations (tool, acting user, outcome, error kind)

Usage:
    from prpsync.logging import extraction_logger, ExtractionLogEntry, now_iso

    entry = ExtractionLogEntry(
        timestamp=now_iso(),
        request_id=str(uuid.uuid4()),
        user=get_current_user(),
        method="parse",
    )
    extraction_logger.info(entry.to_json())

Logs are written to ~/.prpsync/logs/ (override with PRPSYNC_LOG_DIR):
    - extraction.jsonl
    - tools.jsonl
"""

import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import ExtractionLogEntry, ToolLogEntry, now_iso
from .handlers import SecretRedactingFilter, create_jsonl_logger

# Thread-local storage for invocation context
_context = threading.local()

# Shared by every structured logger
redactor = SecretRedactingFilter()


def set_current_user(username: str) -> None:
    """Set the acting username for log correlation."""
    _context.user = username


def get_current_user() -> str:
    """Get the acting username, or 'unknown' if not set."""
    return getattr(_context, "user", "unknown")


def set_request_id(request_id: str) -> None:
    """Set the id of the tool invocation in progress."""
    _context.request_id = request_id


def get_request_id() -> str:
    """Get the current tool invocation id, or empty string."""
    return getattr(_context, "request_id", "")


def register_secret(secret: str) -> None:
    """Make sure ``secret`` never appears in structured logs."""
    redactor.add_secret(secret)


_loggers: dict[str, Any] = {}
_init_lock = threading.Lock()


def _ensure_loggers() -> None:
    """Initialize loggers on first use."""
    if _loggers:
        return

    with _init_lock:
        if _loggers:
            return

        config = get_config()
        _loggers["extraction"] = create_jsonl_logger(
            "prpsync.extraction",
            config.extraction_log_path,
            level=config.extraction_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
            redactor=redactor,
        )
        _loggers["tools"] = create_jsonl_logger(
            "prpsync.tools",
            config.tool_log_path,
            level=config.tool_level,
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
            redactor=redactor,
        )


def reset_loggers() -> None:
    """Drop initialized loggers so the next use re-reads the config."""
    with _init_lock:
        _loggers.clear()


class _LazyLogger:
    """Lazy wrapper that initializes the actual logger on first use."""

    def __init__(self, name: str):
        self._name = name

    def _get_logger(self) -> Any:
        _ensure_loggers()
        return _loggers[self._name]

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().error(msg, *args, **kwargs)


# Public logger instances
extraction_logger = _LazyLogger("extraction")
tool_logger = _LazyLogger("tools")


__all__ = [
    # Loggers
    "extraction_logger",
    "tool_logger",
    # Log entries
    "ExtractionLogEntry",
    "ToolLogEntry",
    # Utilities
    "now_iso",
    "get_current_user",
    "set_current_user",
    "get_request_id",
    "set_request_id",
    "register_secret",
    "reset_loggers",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
