"""
PRP Sync - Exception Hierarchy

All prpsync exceptions inherit from PRPError. Every class carries a fixed
``kind`` tag that the tool layer uses to pick a public message, so nothing
has to be inferred from the raw message text after the fact.
"""

from typing import Any


class PRPError(Exception):
    """Base exception for all prpsync errors."""

    kind = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(PRPError):
    """Raised when configuration is invalid or missing."""

    kind = "config"


# Input Errors
class ValidationError(PRPError):
    """Raised when tool parameters fail validation."""

    kind = "validation"


class InvalidURLError(ValidationError):
    """Raised when a URL does not match any known video URL shape."""

    kind = "invalid_url"


class NotFoundError(PRPError):
    """Raised when a video, PRP or task does not exist."""

    kind = "not_found"


class ForbiddenError(PRPError):
    """Raised when the acting user is not on the allow-list."""

    kind = "forbidden"

    def __init__(self, message: str, user: str):
        super().__init__(
            message,
            {"requiredRole": "privileged", "userRole": "standard", "user": user},
        )
        self.user = user


# Extraction Errors
class ExtractionError(PRPError):
    """Base exception for model output that cannot be used."""

    pass


class InvalidResponseFormatError(ExtractionError):
    """Raised when the model response is not valid JSON."""

    kind = "invalid_response_format"


class MalformedExtractionError(ExtractionError):
    """Raised when the model JSON does not match the PRP shape."""

    kind = "malformed_extraction"


# Upstream Errors
class UpstreamError(PRPError):
    """Raised when an external HTTP API fails."""

    kind = "upstream"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        service: str = "",
        details: dict[str, Any] | None = None,
    ):
        merged = {"status": status, "service": service}
        merged.update(details or {})
        super().__init__(message, merged)
        self.status = status
        self.service = service


class RateLimitError(UpstreamError):
    """Raised when an external API keeps rate limiting after all retries."""

    kind = "rate_limited"

    def __init__(
        self,
        message: str,
        service: str = "",
        retry_after: int | None = None,
    ):
        super().__init__(message, 429, service, {"retry_after": retry_after})
        self.retry_after = retry_after


class CollectionNotFoundError(UpstreamError):
    """Raised when the target Notion database is missing or not shared."""

    kind = "collection_not_found"

    def __init__(self, message: str, database_id: str):
        super().__init__(message, 404, "notion", {"database_id": database_id})
        self.database_id = database_id


# Storage Errors
class StorageError(PRPError):
    """Raised when a database operation fails."""

    kind = "storage"


class SyncStateLostError(StorageError):
    """Raised when recording a failed sync in the database fails too.

    Carries the original sync error so it is not lost.
    """

    kind = "sync_state_lost"

    def __init__(self, message: str, prp_id: str, sync_error: str):
        super().__init__(message, {"prp_id": prp_id, "sync_error": sync_error})
        self.prp_id = prp_id
        self.sync_error = sync_error
