"""Tests for exception hierarchy."""

from prpsync.exceptions import (
    CollectionNotFoundError,
    ConfigError,
    ExtractionError,
    ForbiddenError,
    InvalidResponseFormatError,
    InvalidURLError,
    MalformedExtractionError,
    NotFoundError,
    PRPError,
    RateLimitError,
    StorageError,
    SyncStateLostError,
    UpstreamError,
    ValidationError,
)


class TestPRPError:
    """Tests for base PRPError."""

    def test_basic_error(self):
        """Test basic error creation."""
        err = PRPError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.details == {}
        assert str(err) == "Something went wrong"
        assert err.kind == "internal"

    def test_error_with_details(self):
        """Details are appended to the string form."""
        err = PRPError("Error occurred", {"code": 500})
        assert err.details == {"code": 500}
        assert "500" in str(err)


class TestKinds:
    """Every class carries a fixed kind tag."""

    def test_input_kinds(self):
        assert InvalidURLError("bad").kind == "invalid_url"
        assert isinstance(InvalidURLError("bad"), ValidationError)
        assert ValidationError("bad").kind == "validation"
        assert NotFoundError("missing").kind == "not_found"
        assert ConfigError("unset").kind == "config"

    def test_extraction_kinds(self):
        assert InvalidResponseFormatError("x").kind == "invalid_response_format"
        assert MalformedExtractionError("x").kind == "malformed_extraction"
        assert isinstance(MalformedExtractionError("x"), ExtractionError)

    def test_storage_kinds(self):
        err = SyncStateLostError("lost", "prp-1", "Notion down")
        assert err.kind == "sync_state_lost"
        assert isinstance(err, StorageError)
        assert err.details == {"prp_id": "prp-1", "sync_error": "Notion down"}


class TestForbiddenError:
    """Tests for ForbiddenError."""

    def test_details_shape(self):
        """Forbidden details name the required and actual role."""
        err = ForbiddenError("nope", "mallory")
        assert err.details == {
            "requiredRole": "privileged",
            "userRole": "standard",
            "user": "mallory",
        }
        assert err.user == "mallory"


class TestUpstreamErrors:
    """Tests for upstream error family."""

    def test_upstream_carries_status_and_service(self):
        err = UpstreamError("boom", status=502, service="notion", details={"code": "bad"})
        assert err.status == 502
        assert err.service == "notion"
        assert err.details == {"status": 502, "service": "notion", "code": "bad"}

    def test_rate_limit_is_upstream_429(self):
        err = RateLimitError("slow down", service="youtube", retry_after=30)
        assert isinstance(err, UpstreamError)
        assert err.status == 429
        assert err.retry_after == 30
        assert err.kind == "rate_limited"

    def test_collection_not_found(self):
        err = CollectionNotFoundError("gone", "db-1")
        assert err.status == 404
        assert err.database_id == "db-1"
        assert err.kind == "collection_not_found"
