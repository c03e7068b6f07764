"""
Unit tests for error_handlers module.
"""

import pytest

from intake_intelligence.models.data_structures import ErrorCategory
from intake_intelligence.utils.error_handlers import (
    ConfigurationError,
    PipelineError,
    ProviderError,
    ValidationError,
    classify_error,
    get_retry_delay,
    is_retriable_error,
)

pytestmark = pytest.mark.unit


class StatusError(Exception):
    """SDK-style exception carrying an HTTP status code."""

    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class TestClassifyError:
    """Tests for classify_error."""

    def test_provider_error_keeps_category(self):
        error = ProviderError("slow down", category=ErrorCategory.RATE_LIMIT)
        assert classify_error(error) == ErrorCategory.RATE_LIMIT

    def test_builtin_timeout_and_connection(self):
        assert classify_error(TimeoutError()) == ErrorCategory.TIMEOUT
        assert classify_error(ConnectionResetError()) == ErrorCategory.CONNECTION

    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (429, ErrorCategory.RATE_LIMIT),
            (401, ErrorCategory.AUTHENTICATION),
            (403, ErrorCategory.AUTHENTICATION),
            (503, ErrorCategory.SERVER_ERROR),
        ],
    )
    def test_status_code(self, status_code, expected):
        assert classify_error(StatusError("request failed", status_code)) == expected

    def test_message_keywords(self):
        assert classify_error(RuntimeError("Rate limit exceeded")) == ErrorCategory.RATE_LIMIT
        assert classify_error(RuntimeError("model overloaded")) == ErrorCategory.SERVER_ERROR

    def test_unknown(self):
        assert classify_error(ValueError("odd")) == ErrorCategory.UNKNOWN


class TestRetriability:
    """Tests for is_retriable_error and get_retry_delay."""

    def test_permanent_errors(self):
        assert not is_retriable_error(ValidationError("no images"))
        assert not is_retriable_error(ConfigurationError("missing key"))
        assert not is_retriable_error(
            ProviderError("bad key", category=ErrorCategory.AUTHENTICATION)
        )

    def test_transient_errors(self):
        assert is_retriable_error(TimeoutError())
        assert is_retriable_error(ValueError("unclassified"))

    def test_retry_delay_bounds(self):
        for attempt in range(3):
            delay = get_retry_delay(attempt, base_delay=1.0, max_jitter=0.5)
            assert 2**attempt <= delay <= 2**attempt + 0.5


class TestErrorSerialization:
    """Tests for to_dict of the error taxonomy."""

    def test_pipeline_error_cites_both_causes(self):
        error = PipelineError(
            "run failed",
            processing_id="RUN-1",
            primary_error=TimeoutError("slow"),
            fallback_error=ConnectionError("down"),
        )
        data = error.to_dict()

        assert data["processing_id"] == "RUN-1"
        assert "slow" in data["primary_error"]
        assert "down" in data["fallback_error"]
        assert data["recoverable"] is False

    def test_validation_error_field(self):
        data = ValidationError("empty", field_name="images").to_dict()
        assert data["field_name"] == "images"
        assert data["stage"] == "validation"
