"""Configuration loading and validation for the intake intelligence system.

This module loads the system configuration from a YAML file, merges it over
built-in defaults, loads provider API keys from a ``.env`` file when present,
and validates numeric ranges and provider settings.

Typical usage example:
    config = Config.load()
    errors = Config.validate(config)
    if errors:
        raise ConfigurationError(f"Configuration invalid: {errors}")
"""

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .error_handlers import ConfigurationError

# Project root is four levels up from this file (src/intake_intelligence/utils).
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

DEFAULT_CONFIG: Dict[str, Any] = {
    "llm": {
        "vision": {
            "name": "openai",
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
            "timeout": 60,
        },
        "primary_text": {
            "name": "openai",
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
            "timeout": 60,
        },
        "secondary_text": {
            "name": "anthropic",
            "model": "claude-3-5-sonnet-20241022",
            "api_key_env": "ANTHROPIC_API_KEY",
            "timeout": 60,
        },
        "max_tokens": 1500,
        "temperature": 0.2,
    },
    "pipeline": {
        "max_retries": 3,
        "base_delay_seconds": 1.0,
        "max_jitter_seconds": 0.5,
        "image_batch_size": 3,
        "inter_batch_delay_seconds": 1.0,
        "run_timeout_seconds": 300.0,
        "specialized_project_types": ["window_replacement"],
    },
    "image_preprocessing": {
        "max_dimension": 2048,
        "jpeg_quality": 95,
        "apply_clahe": True,
        "clahe_clip_limit": 2.0,
        "clahe_grid_size": [8, 8],
        "download_timeout_seconds": 30.0,
        "supported_mime_types": ["image/jpeg", "image/png", "image/webp"],
    },
    "cache": {
        "ttl_seconds": 86400,
        "notes_prefix_length": 100,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SystemConfig:
    """Container for system configuration parameters.

    Attributes:
        llm: Provider settings for the vision, primary text and secondary
            text analyzers plus shared generation settings.
        pipeline: Retry, batching, deadline and specialized-stage settings.
        image_preprocessing: Image enhancement settings.
        cache: Result cache settings.
        logging: Logging level and format.
    """

    def __init__(self, **config_dict: Dict[str, Any]) -> None:
        """Initialize SystemConfig from a configuration dictionary.

        Missing sections and keys fall back to ``DEFAULT_CONFIG``.

        Args:
            **config_dict: Configuration sections keyed by name.
        """
        merged = _deep_merge(DEFAULT_CONFIG, config_dict)

        self.llm: Dict[str, Any] = merged["llm"]
        self.pipeline: Dict[str, Any] = merged["pipeline"]
        self.image_preprocessing: Dict[str, Any] = merged["image_preprocessing"]
        self.cache: Dict[str, Any] = merged["cache"]
        self.logging: Dict[str, Any] = merged["logging"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "llm": copy.deepcopy(self.llm),
            "pipeline": copy.deepcopy(self.pipeline),
            "image_preprocessing": copy.deepcopy(self.image_preprocessing),
            "cache": copy.deepcopy(self.cache),
            "logging": copy.deepcopy(self.logging),
        }


class Config:
    """Static utility class for loading and validating configuration files."""

    KNOWN_PROVIDERS = ("openai", "anthropic", "google")
    PROVIDER_ROLES = ("vision", "primary_text", "secondary_text")

    @staticmethod
    def load(
        config_path: Optional[str] = "config/system_config.yaml",
        env_file: Optional[str] = ".env",
    ) -> SystemConfig:
        """Load system configuration from a YAML file.

        Relative paths are resolved against the project root. When
        ``config_path`` is None, only defaults are used.

        Args:
            config_path: Path to the configuration YAML file.
            env_file: Optional ``.env`` file with provider API keys. A
                missing file is ignored.

        Returns:
            SystemConfig object containing the loaded configuration.

        Raises:
            ConfigurationError: If the file does not exist, is not valid
                YAML, or does not contain a dictionary.
        """
        if env_file:
            env_path = Path(env_file)
            if not env_path.is_absolute():
                env_path = PROJECT_ROOT / env_path
            if env_path.exists():
                load_dotenv(env_path, override=False)

        if config_path is None:
            return SystemConfig()

        config_file_path = Path(config_path)
        if not config_file_path.is_absolute():
            config_file_path = PROJECT_ROOT / config_file_path

        if not config_file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file_path}",
                config_key="config_path",
            )

        try:
            with open(config_file_path, "r", encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse configuration file: {config_file_path}",
                config_key="config_path",
                original_error=e,
            ) from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                "Configuration file must contain a YAML dictionary",
                config_key="config_path",
            )

        return SystemConfig(**config_dict)

    @staticmethod
    def validate(config: SystemConfig) -> List[str]:
        """Validate ranges and provider settings.

        Args:
            config: SystemConfig object to validate.

        Returns:
            List of error messages. Empty list if the configuration is valid.
        """
        errors: List[str] = []

        for role in Config.PROVIDER_ROLES:
            provider = config.llm.get(role)
            if not isinstance(provider, dict):
                errors.append(f"llm.{role} must be a mapping")
                continue
            name = str(provider.get("name", "")).lower()
            if name not in Config.KNOWN_PROVIDERS:
                errors.append(
                    f"llm.{role}.name must be one of {Config.KNOWN_PROVIDERS}, "
                    f"got {provider.get('name')!r}"
                )
            if not provider.get("api_key_env"):
                errors.append(f"llm.{role}.api_key_env is required")

        primary = config.llm.get("primary_text") or {}
        secondary = config.llm.get("secondary_text") or {}
        if primary.get("name") and primary.get("name") == secondary.get("name"):
            errors.append(
                "llm.secondary_text should use a different provider than "
                "llm.primary_text"
            )

        pipeline = config.pipeline
        range_checks = [
            ("pipeline.max_retries", pipeline.get("max_retries"), 1, 10),
            ("pipeline.base_delay_seconds", pipeline.get("base_delay_seconds"), 0, 60),
            ("pipeline.max_jitter_seconds", pipeline.get("max_jitter_seconds"), 0, 60),
            ("pipeline.image_batch_size", pipeline.get("image_batch_size"), 1, 20),
            (
                "pipeline.inter_batch_delay_seconds",
                pipeline.get("inter_batch_delay_seconds"),
                0,
                60,
            ),
            (
                "pipeline.run_timeout_seconds",
                pipeline.get("run_timeout_seconds"),
                1,
                3600,
            ),
            (
                "image_preprocessing.max_dimension",
                config.image_preprocessing.get("max_dimension"),
                64,
                8192,
            ),
            (
                "image_preprocessing.jpeg_quality",
                config.image_preprocessing.get("jpeg_quality"),
                1,
                100,
            ),
            ("cache.ttl_seconds", config.cache.get("ttl_seconds"), 0, None),
            (
                "cache.notes_prefix_length",
                config.cache.get("notes_prefix_length"),
                0,
                None,
            ),
        ]
        for key, value, minimum, maximum in range_checks:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                errors.append(f"{key} must be a number, got {value!r}")
            elif value < minimum or (maximum is not None and value > maximum):
                bound = f"[{minimum}, {maximum}]" if maximum is not None else f">= {minimum}"
                errors.append(f"{key} out of range {bound}: {value}")

        if not isinstance(pipeline.get("specialized_project_types"), list):
            errors.append("pipeline.specialized_project_types must be a list")

        mime_types = config.image_preprocessing.get("supported_mime_types")
        if not mime_types or not isinstance(mime_types, list):
            errors.append("image_preprocessing.supported_mime_types must be a non-empty list")

        return errors
