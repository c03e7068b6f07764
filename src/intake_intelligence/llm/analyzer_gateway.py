"""
Analyzer gateway - builds the analyzers the pipeline talks to.

The pipeline needs three analyzers: a vision analyzer for photos, a primary
text analyzer for notes, and a secondary text analyzer on a different
provider used as a one-shot fallback. This module turns the ``llm`` section
of SystemConfig into provider instances.

Typical usage example:

    config = Config.load()
    analyzers = build_analyzers(config.llm, usage_tracker=UsageTracker())
    orchestrator = PipelineOrchestrator(config, analyzers=analyzers)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..utils.error_handlers import ConfigurationError
from .providers.anthropic_provider import AnthropicProvider
from .providers.base_provider import LLMProvider, TextAnalyzer, VisionAnalyzer
from .providers.google_provider import GoogleProvider
from .providers.openai_provider import OpenAIProvider
from .usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Configuration for a single provider role.

    Attributes:
        name: Provider name ('openai', 'anthropic', 'google').
        model: Model identifier.
        api_key_env: Environment variable name containing API key.
        timeout: Request timeout in seconds.
        base_url: Optional custom base URL for proxies/Azure (OpenAI only).
    """

    name: str
    model: str
    api_key_env: str
    timeout: float = 60.0
    base_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        return cls(
            name=str(data.get("name", "")).lower(),
            model=data.get("model", ""),
            api_key_env=data.get("api_key_env", ""),
            timeout=float(data.get("timeout", 60.0)),
            base_url=data.get("base_url"),
        )


@dataclass
class AnalyzerSet:
    """The analyzers used by one orchestrator."""

    vision: VisionAnalyzer
    primary_text: TextAnalyzer
    secondary_text: Optional[TextAnalyzer] = None


class ProviderFactory:
    """Factory for creating LLM provider instances."""

    _providers: Dict[str, Callable[..., LLMProvider]] = {
        "openai": lambda api_key, config, common: OpenAIProvider(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            **common,
        ),
        "anthropic": lambda api_key, config, common: AnthropicProvider(
            api_key=api_key,
            model=config.model,
            **common,
        ),
        "google": lambda api_key, config, common: GoogleProvider(
            api_key=api_key,
            model=config.model,
            **common,
        ),
    }

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        api_key: str,
        max_tokens: int = 1500,
        temperature: float = 0.2,
        usage_tracker: Optional[UsageTracker] = None,
    ) -> LLMProvider:
        """Create a provider instance by name.

        Args:
            config: Provider role configuration.
            api_key: API authentication key.
            max_tokens: Maximum response tokens.
            temperature: Sampling temperature.
            usage_tracker: Shared usage counters.

        Returns:
            Instantiated provider object.

        Raises:
            ValueError: If provider name is unknown.
        """
        if config.name not in cls._providers:
            raise ValueError(
                f"Unknown provider: {config.name}. "
                f"Available: {', '.join(cls._providers.keys())}"
            )

        common = {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": config.timeout,
            "usage_tracker": usage_tracker,
        }
        return cls._providers[config.name](api_key, config, common)


def _init_provider(
    role: str,
    llm_config: Dict[str, Any],
    usage_tracker: Optional[UsageTracker],
    required: bool,
) -> Optional[LLMProvider]:
    raw = llm_config.get(role)
    if not raw:
        if required:
            raise ConfigurationError(f"Provider for {role} not configured", config_key=f"llm.{role}")
        return None

    provider_config = ProviderConfig.from_dict(raw)
    api_key = os.getenv(provider_config.api_key_env, "").strip()
    if not api_key:
        error_msg = f"API key not found: {provider_config.api_key_env}"
        if required:
            raise ConfigurationError(error_msg, config_key=provider_config.api_key_env)
        logger.warning(f"{role}: {error_msg}; continuing without it")
        return None

    try:
        provider = ProviderFactory.create(
            provider_config,
            api_key,
            max_tokens=int(llm_config.get("max_tokens", 1500)),
            temperature=float(llm_config.get("temperature", 0.2)),
            usage_tracker=usage_tracker,
        )
    except ValueError as e:
        raise ConfigurationError(
            f"Failed to create provider {provider_config.name} for {role}: {e}",
            config_key=f"llm.{role}",
            original_error=e,
        ) from e

    logger.info(f"Initialized {role} analyzer: {provider_config.name}/{provider_config.model}")
    return provider


def build_analyzers(
    llm_config: Dict[str, Any], usage_tracker: Optional[UsageTracker] = None
) -> AnalyzerSet:
    """Build the vision, primary text and secondary text analyzers.

    The secondary analyzer is optional: a missing API key only disables the
    one-shot secondary attempt in notes analysis.

    Args:
        llm_config: The ``llm`` section of SystemConfig.
        usage_tracker: Shared usage counters.

    Returns:
        AnalyzerSet with configured providers.

    Raises:
        ConfigurationError: If the vision or primary text provider cannot be built.
    """
    vision = _init_provider("vision", llm_config, usage_tracker, required=True)
    primary = _init_provider("primary_text", llm_config, usage_tracker, required=True)
    secondary = _init_provider("secondary_text", llm_config, usage_tracker, required=False)
    return AnalyzerSet(vision=vision, primary_text=primary, secondary_text=secondary)
