"""Unit tests for the error taxonomy and its serialization."""

import json

from campaign_resilience.types import (
    CircuitOpenError,
    ErrorCategory,
    ErrorSeverity,
    ExhaustedRetriesError,
    FatalFallbackError,
    IngestionError,
    PermanentRejectionError,
    ResilienceError,
    RetryCancelledError,
    TransientDependencyError,
    error_to_dict,
    serialize_error,
)


class TestCategories:
    """Each error carries the category callers branch on."""

    def test_categories(self):
        assert TransientDependencyError("x").category is ErrorCategory.TRANSIENT
        assert IngestionError("x").category is ErrorCategory.TRANSIENT
        assert CircuitOpenError().category is ErrorCategory.CIRCUIT_OPEN
        assert PermanentRejectionError(["e1"], "stale").category is ErrorCategory.PERMANENT
        assert RetryCancelledError().category is ErrorCategory.CANCELLED
        assert ExhaustedRetriesError(3, ValueError("x")).category is ErrorCategory.EXHAUSTED
        assert FatalFallbackError("x").category is ErrorCategory.FATAL

    def test_all_share_base_class(self):
        for error in (
            TransientDependencyError("x"),
            CircuitOpenError(),
            RetryCancelledError(),
            FatalFallbackError("x"),
        ):
            assert isinstance(error, ResilienceError)

    def test_retry_cancelled_is_not_asyncio_cancelled(self):
        import asyncio
        assert not issubclass(RetryCancelledError, asyncio.CancelledError)

    def test_severity_override(self):
        error = TransientDependencyError("x", severity=ErrorSeverity.CRITICAL)
        assert error.severity is ErrorSeverity.CRITICAL
        assert TransientDependencyError("y").severity is ErrorSeverity.MEDIUM


class TestSerialization:
    """Test to_dict and serialize_error."""

    def test_exhausted_to_dict(self):
        data = ExhaustedRetriesError(4, ConnectionError("reset")).to_dict()

        assert data["error_type"] == "ExhaustedRetriesError"
        assert data["attempts"] == 4
        assert data["last_error"] == "reset"
        assert data["message"] == "Operation failed after 4 attempts: reset"

    def test_ingestion_error_to_dict(self):
        data = IngestionError("bad token", status_code=401, error_code=190, trace_id="t1").to_dict()

        assert data["dependency"] == "ingestion-api"
        assert data["status_code"] == 401
        assert data["error_code"] == 190
        assert data["trace_id"] == "t1"

    def test_permanent_rejection(self):
        error = PermanentRejectionError(["a", "b"], "retry_ceiling")

        assert str(error) == "2 event(s) permanently rejected: retry_ceiling"
        assert error.to_dict()["event_ids"] == ["a", "b"]

    def test_circuit_open_context(self):
        error = CircuitOpenError("open", dependency="ai-provider", retry_after=12.5)
        assert error.to_dict()["context"] == {"dependency": "ai-provider", "retry_after": 12.5}

    def test_serialize_plain_exception(self):
        assert json.loads(serialize_error(ValueError("Invalid value"))) == {
            "error_type": "ValueError",
            "message": "Invalid value",
        }

    def test_serialize_resilience_error_is_json(self):
        payload = json.loads(serialize_error(FatalFallbackError("all down", last_error=RuntimeError("x"))))
        assert payload["category"] == "fatal"
        assert payload["severity"] == "critical"
        assert payload["last_error"] == "x"

    def test_error_to_dict_dispatches(self):
        assert error_to_dict(RetryCancelledError(attempt=2))["category"] == "cancelled"


def test_public_types_exports_resolve():
    import campaign_resilience.types as types

    for name in types.__all__:
        assert hasattr(types, name), name
    assert not [name for name in types.__all__ if name.endswith("Literal")]
