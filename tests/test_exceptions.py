"""Tests for exceptions.py: hierarchy, serialization and retry classification."""

from entity_search.shared.exceptions import (
    ConfigurationError,
    EntitySearchError,
    ErrorCategory,
    ErrorSeverity,
    GatewayError,
    InternalServiceError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
    is_caller_facing,
    is_retryable_error,
)


class TestEntitySearchError:
    def test_basic_creation(self):
        e = EntitySearchError("test error")
        assert str(e) == "test error"
        assert e.code == "ERROR"
        assert e.severity == ErrorSeverity.ERROR
        assert e.category == ErrorCategory.INTERNAL
        assert e.retryable is False

    def test_to_dict(self):
        e = EntitySearchError("fail", code="X", details={"a": 1})
        assert e.to_dict() == {"error": "fail", "code": "X", "category": "internal", "details": {"a": 1}}

    def test_to_dict_minimal(self):
        assert "details" not in EntitySearchError("fail").to_dict()


class TestCallerFacingErrors:
    def test_configuration_error(self):
        e = ConfigurationError("bad facet", code="NO_FACET_TYPE_DEFINED", details={"facet": "brand"})
        assert e.severity == ErrorSeverity.CRITICAL
        assert e.to_dict()["category"] == "config"
        assert e.details == {"facet": "brand"}

    def test_validation_error_carries_field(self):
        e = ValidationError("bad", code="NON_CONFORMING_FORMAT", field="page")
        assert e.field == "page"
        assert e.details == {"field": "page"}
        assert e.severity == ErrorSeverity.WARNING

    def test_validation_error_without_field(self):
        assert ValidationError("No input provided", code="NO_INPUT").details == {}

    def test_internal_service_error_hides_cause(self):
        cause = KeyError("secret")
        e = InternalServiceError(cause=cause)
        assert e.cause is cause
        assert e.to_dict() == {"error": "Internal Service Error", "code": "INTERNAL_SERVICE_ERROR", "category": "internal"}

    def test_is_caller_facing(self):
        assert is_caller_facing(ValidationError("x"))
        assert is_caller_facing(ConfigurationError("x"))
        assert is_caller_facing(InternalServiceError())
        assert not is_caller_facing(GatewayError("x"))
        assert not is_caller_facing(RuntimeError("x"))


class TestGatewayErrors:
    def test_rate_limit(self):
        e = RateLimitError(retry_after=2.5)
        assert e.retry_after == 2.5
        assert e.code == "RATE_LIMITED"
        assert e.severity == ErrorSeverity.TRANSIENT
        assert isinstance(e, GatewayError)

    def test_service_unavailable(self):
        e = ServiceUnavailableError(status_code=503)
        assert e.details == {"status_code": 503}
        assert ServiceUnavailableError().details == {}

    def test_network_error(self):
        assert NetworkError().code == "NETWORK_ERROR"

    def test_parse_error_message(self):
        assert str(ParseError("bad json", source="/x/_search")) == "Parse error (/x/_search): bad json"
        assert str(ParseError("bad json")) == "Parse error: bad json"

    def test_retry_classification(self):
        assert is_retryable_error(RateLimitError())
        assert is_retryable_error(NetworkError())
        assert is_retryable_error(ServiceUnavailableError())
        assert not is_retryable_error(GatewayError("rejected"))
        assert not is_retryable_error(ParseError("x"))
        assert not is_retryable_error(ValueError("x"))
