"""
Log handlers for prpsync.

JSONL output with size-based rotation, plus a filter that scrubs
registered secret values before anything reaches disk.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

REDACTED = "[REDACTED]"


class SecretRedactingFilter(logging.Filter):
    """Replace known secret values (API keys, tokens) in log messages."""

    def __init__(self, secrets: set[str] | None = None):
        super().__init__()
        self._secrets: set[str] = set()
        for secret in secrets or ():
            self.add_secret(secret)

    def add_secret(self, secret: str) -> None:
        # Very short values would redact ordinary words
        if secret and len(secret) >= 8:
            self._secrets.add(secret)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            record.msg = self.redact(record.getMessage())
            record.args = None
        return True


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler writing one JSON object per line.

    Messages produced by ``entry.to_json()`` are written as-is; plain text
    messages are wrapped with timestamp, level and logger name.
    """

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10_000_000,
        backup_count: int = 5,
    ):
        filepath = Path(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            str(filepath),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            try:
                payload = json.loads(message)
                if not isinstance(payload, dict):
                    raise ValueError("not an object")
            except ValueError:
                payload = {
                    "timestamp": datetime.fromtimestamp(
                        record.created, tz=timezone.utc
                    ).isoformat(),
                    "level": record.levelname,
                    "logger": record.name,
                    "message": message,
                }

            if self.shouldRollover(record):
                self.doRollover()
            self.stream.write(json.dumps(payload, default=str) + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
    redactor: SecretRedactingFilter | None = None,
) -> logging.Logger:
    """
    Create a non-propagating logger writing JSONL to ``filepath``.

    Args:
        name: Logger name
        filepath: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max file size before rotation
        backup_count: Number of backup files
        redactor: Optional filter scrubbing secrets

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for old in list(logger.handlers):
        old.close()
        logger.removeHandler(old)

    handler = JSONLRotatingHandler(filepath, max_bytes=max_bytes, backup_count=backup_count)
    if redactor is not None:
        handler.addFilter(redactor)
    logger.addHandler(handler)
    logger.propagate = False

    return logger
