"""
Log Entry Data Structures for prpsync.

Structured entries for model calls and tool invocations.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass
class ExtractionLogEntry:
    """Log entry for a generative model call."""

    # Identity
    timestamp: str  # ISO 8601
    request_id: str  # tool invocation id, or a fresh UUID outside a tool call
    user: str

    # Method info
    method: str  # "parse", "extract_more", "summarize"

    # Request
    prompt_preview: str = ""
    max_tokens: int = 0
    attempts: int = 0

    # Response
    response_preview: str = ""
    model: str = ""
    finish_reason: str = ""

    # Metrics
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0

    # Error (if any)
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractionLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class ToolLogEntry:
    """Log entry for one tool invocation."""

    timestamp: str  # ISO 8601
    request_id: str
    tool: str
    user: str

    outcome: str = "success"  # "success" or "error"
    error_kind: str | None = None
    summary: str = ""
    latency_ms: int = 0

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
