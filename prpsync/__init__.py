"""
PRP Sync - extract Product Requirements Prompts from YouTube videos.

Fetches video metadata, extracts a structured PRP and task list with an
LLM, stores it in SQLite and mirrors it into Notion.
"""

__version__ = "0.1.0"

from prpsync.exceptions import (
    ConfigError,
    NotFoundError,
    PRPError,
    StorageError,
    UpstreamError,
)

__all__ = [
    "__version__",
    "PRPError",
    "ConfigError",
    "NotFoundError",
    "StorageError",
    "UpstreamError",
]
