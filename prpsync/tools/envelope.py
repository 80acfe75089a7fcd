"""
Tool response envelopes.

Success: ``{"message": str, "data": dict}``
Error:   ``{"error": str, "details": dict}``

The error summary is chosen by the exception's ``kind``. Kinds whose raw
message may carry upstream or driver text get fixed public phrasing; kinds
whose message is written by this package are shown as-is.
"""

from typing import Any

from prpsync.exceptions import PRPError

PUBLIC_MESSAGES: dict[str, str] = {
    "upstream": "An external service request failed. Please try again later.",
    "rate_limited": "Rate limit exceeded. Please try again later.",
    "storage": "A database error occurred. Please try again later.",
    "sync_state_lost": "A database error occurred while recording the sync result.",
    "config": "The service is not configured for this operation.",
    "internal": "An unexpected error occurred.",
}

# Messages written by this package, safe to show verbatim
VERBATIM_KINDS = frozenset(
    {
        "invalid_url",
        "validation",
        "not_found",
        "forbidden",
        "collection_not_found",
        "malformed_extraction",
        "invalid_response_format",
    }
)


def success(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"message": message, "data": data}


def public_message(exc: BaseException) -> str:
    """Summary safe to show a caller for any exception."""
    kind = getattr(exc, "kind", "internal") if isinstance(exc, PRPError) else "internal"
    if kind in VERBATIM_KINDS and isinstance(exc, PRPError):
        return exc.message
    return PUBLIC_MESSAGES.get(kind, PUBLIC_MESSAGES["internal"])


def error(exc: BaseException, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Build an error envelope.

    Args:
        exc: The failure
        context: Operation details to include (ids, operation name)
    """
    if isinstance(exc, PRPError):
        details: dict[str, Any] = {"kind": exc.kind, **exc.details}
    else:
        details = {"kind": "internal", "error_type": type(exc).__name__}
    details.update(context or {})
    return {"error": public_message(exc), "details": details}
