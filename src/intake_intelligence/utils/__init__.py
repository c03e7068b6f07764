"""Utility functions for the intake intelligence system."""

from .config_loader import Config, SystemConfig
from .error_handlers import (
    ConfigurationError,
    IntakeProcessingError,
    PipelineError,
    ProviderError,
    StructuringError,
    ValidationError,
    classify_error,
    is_retriable_error,
)
from .file_utils import generate_unique_id, hash_parts
from .logging_utils import setup_logging
from .text_utils import leading_number, normalize_for_matching

__all__ = [
    "Config",
    "SystemConfig",
    "ConfigurationError",
    "IntakeProcessingError",
    "PipelineError",
    "ProviderError",
    "StructuringError",
    "ValidationError",
    "classify_error",
    "is_retriable_error",
    "generate_unique_id",
    "hash_parts",
    "setup_logging",
    "leading_number",
    "normalize_for_matching",
]
