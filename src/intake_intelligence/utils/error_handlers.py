"""
Error handling utilities for the Intake Intelligence System.

This module provides custom exceptions and error handling functions for robust
error management throughout the contractor intake analysis pipeline.

Classes:
    IntakeProcessingError: Base exception for all intake processing errors.
    ValidationError: Exception for invalid analysis requests (fatal).
    ProviderError: Exception for categorized analyzer/provider failures.
    ParseError: Exception for analyzer output that cannot be read as JSON.
    ImageAnalysisError: Exception raised when the image stage cannot proceed.
    StructuringError: Exception for malformed aggregated findings.
    ConfigurationError: Exception for configuration errors.
    PipelineError: Exception raised when primary and fallback passes both fail.

Functions:
    classify_error: Map any exception to an ErrorCategory.
    is_retriable_error: Determine if an error should trigger a retry.
    get_retry_delay: Calculate retry delay using exponential backoff and jitter.
    log_error_with_context: Log error with full context for debugging.
"""

import logging
import random
import traceback
from typing import Any, Dict, Optional

from ..models.data_structures import ErrorCategory


class IntakeProcessingError(Exception):
    """
    Base exception for intake processing errors.

    Attributes:
        message: Error message describing what went wrong.
        processing_id: Optional identifier of the run being processed.
        stage: Optional pipeline stage where the error occurred.
        recoverable: Whether the error is recoverable with retry.
        original_error: Optional underlying exception that was wrapped.
    """

    def __init__(
        self,
        message: str,
        processing_id: Optional[str] = None,
        stage: Optional[str] = None,
        recoverable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize IntakeProcessingError.

        Args:
            message: Error message describing the issue.
            processing_id: Optional run identifier.
            stage: Optional pipeline stage name.
            recoverable: Whether error can be recovered with retry.
            original_error: Optional underlying exception that caused this error.
        """
        self.message = message
        self.processing_id = processing_id
        self.stage = stage
        self.recoverable = recoverable
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging and storage.

        Returns:
            Dictionary containing error_type, message, processing_id, stage,
            recoverable status, and original error information if available.
        """
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "processing_id": self.processing_id,
            "stage": self.stage,
            "recoverable": self.recoverable,
        }

        if self.original_error:
            result["original_error_type"] = type(self.original_error).__name__
            result["original_error_message"] = str(self.original_error)

        return result


class ValidationError(IntakeProcessingError):
    """
    Exception for request validation errors.

    Validation errors abort the run immediately and are never retried.

    Attributes:
        field_name: Optional field name that failed validation.
    """

    def __init__(
        self,
        message: str,
        processing_id: Optional[str] = None,
        field_name: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            processing_id=processing_id,
            stage="validation",
            recoverable=False,
        )
        self.field_name = field_name

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["field_name"] = self.field_name
        return result


class ProviderError(IntakeProcessingError):
    """
    Exception for analyzer provider failures.

    Attributes:
        category: ErrorCategory describing the failure class.
        provider: Provider name (openai, anthropic, google).
        status_code: HTTP status code if applicable.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize ProviderError.

        Args:
            message: Error message describing the API issue.
            category: Failure category used for retry decisions and reporting.
            provider: Optional provider name.
            status_code: Optional HTTP status code.
            original_error: Optional underlying SDK exception.
        """
        super().__init__(
            message=message,
            recoverable=category != ErrorCategory.AUTHENTICATION,
            original_error=original_error,
        )
        self.category = category
        self.provider = provider
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["category"] = self.category.value
        result["provider"] = self.provider
        result["status_code"] = self.status_code
        return result


class ParseError(IntakeProcessingError):
    """
    Exception for analyzer responses that contain no recoverable JSON.

    Attributes:
        raw_text: Leading part of the offending response for diagnostics.
    """

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message=message, recoverable=True)
        self.raw_text = raw_text[:200]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["raw_text"] = self.raw_text
        return result


class ImageAnalysisError(IntakeProcessingError):
    """Exception raised when the image analysis stage cannot proceed at all."""

    def __init__(self, message: str, processing_id: Optional[str] = None):
        super().__init__(
            message=message,
            processing_id=processing_id,
            stage="imageAnalysis",
            recoverable=False,
        )


class StructuringError(IntakeProcessingError):
    """Exception for aggregated findings that cannot be structured."""

    def __init__(
        self,
        message: str,
        processing_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            processing_id=processing_id,
            stage="structuring",
            recoverable=False,
            original_error=original_error,
        )


class ConfigurationError(IntakeProcessingError):
    """
    Exception for configuration errors.

    Attributes:
        config_key: Optional configuration key that caused the error.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            stage="initialization",
            recoverable=False,
            original_error=original_error,
        )
        self.config_key = config_key

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


class PipelineError(IntakeProcessingError):
    """
    Exception raised when both the primary and the fallback pass fail.

    Attributes:
        primary_error: Exception that ended the primary pass.
        fallback_error: Exception that ended the fallback pass, if one ran.
    """

    def __init__(
        self,
        message: str,
        processing_id: Optional[str] = None,
        primary_error: Optional[BaseException] = None,
        fallback_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            processing_id=processing_id,
            recoverable=False,
            original_error=fallback_error or primary_error,
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["primary_error"] = describe_error(self.primary_error)
        result["fallback_error"] = describe_error(self.fallback_error)
        return result


def describe_error(error: Optional[BaseException]) -> Optional[str]:
    """Render an exception as ``[Type] message`` (``None`` stays ``None``)."""
    if error is None:
        return None
    message = str(error) or repr(error)
    return f"[{type(error).__name__}] {message}"


def classify_error(error: BaseException) -> ErrorCategory:
    """
    Map an exception to an ErrorCategory.

    ProviderError instances keep their own category. Other exceptions are
    classified by type first (timeouts, connection errors), then by an HTTP
    ``status_code`` attribute, and finally by keywords in the message.

    Args:
        error: The exception to classify.

    Returns:
        The matching ErrorCategory, UNKNOWN when nothing matches.

    Example:
        >>> classify_error(TimeoutError("read timed out"))
        <ErrorCategory.TIMEOUT: 'timeout'>
    """
    if isinstance(error, ProviderError):
        return error.category

    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorCategory.CONNECTION

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorCategory.RATE_LIMIT
        if status_code in (401, 403):
            return ErrorCategory.AUTHENTICATION
        if status_code == 408:
            return ErrorCategory.TIMEOUT
        if status_code >= 500:
            return ErrorCategory.SERVER_ERROR

    error_str = str(error).lower()
    keyword_map = [
        (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "429")),
        (ErrorCategory.AUTHENTICATION, ("api key", "authentication", "unauthorized", "401", "403")),
        (ErrorCategory.TIMEOUT, ("timeout", "timed out")),
        (ErrorCategory.SERVER_ERROR, ("500", "502", "503", "overloaded", "service unavailable", "bad gateway")),
        (ErrorCategory.CONNECTION, ("connection", "network", "unreachable")),
    ]
    for category, keywords in keyword_map:
        if any(keyword in error_str for keyword in keywords):
            return category

    return ErrorCategory.UNKNOWN


def is_retriable_error(error: BaseException) -> bool:
    """
    Determine if an error should trigger a retry attempt.

    Validation errors and authentication failures are permanent; every other
    failure (including unclassified ones) is worth another attempt.

    Args:
        error: The exception to evaluate.

    Returns:
        True if the operation that raised the error may be retried.
    """
    if isinstance(error, (ValidationError, ConfigurationError)):
        return False
    return classify_error(error) != ErrorCategory.AUTHENTICATION


def get_retry_delay(
    attempt: int, base_delay: float = 1.0, max_jitter: float = 0.5
) -> float:
    """
    Calculate retry delay using exponential backoff with jitter.

    Implements ``delay = base_delay * 2^attempt + uniform(0, max_jitter)``.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        base_delay: Base delay in seconds. Defaults to 1.0.
        max_jitter: Upper bound of the random jitter in seconds.

    Returns:
        Delay in seconds.

    Example:
        >>> 1.0 <= get_retry_delay(0) <= 1.5
        True
        >>> 4.0 <= get_retry_delay(2) <= 4.5
        True
    """
    return base_delay * (2**attempt) + random.uniform(0, max_jitter)


def log_error_with_context(
    error: BaseException, logger: logging.Logger, context: Dict[str, Any]
) -> None:
    """
    Log error with context information for debugging.

    Args:
        error: The exception that occurred.
        logger: Logger instance to use for logging.
        context: Dictionary with contextual information (processing_id, stage, etc.).

    Note:
        Stack traces are only logged when logger is at DEBUG level or lower.
    """
    processing_id = context.get("processing_id", "unknown")
    stage = context.get("stage", "unknown")

    logger.error(
        f"Error in {stage} for run {processing_id}: {describe_error(error)}",
        extra={"processing_id": processing_id},
    )

    if isinstance(error, IntakeProcessingError) and error.original_error:
        logger.error(f"  Original error: {describe_error(error.original_error)}")

    for key, value in context.items():
        if key not in ["processing_id", "stage"]:
            logger.error(f"  {key}: {value}")

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Stack trace:")
        logger.debug(traceback.format_exc())
