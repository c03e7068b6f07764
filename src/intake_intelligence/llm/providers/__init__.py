"""Concrete analyzer providers."""

from .anthropic_provider import AnthropicProvider
from .base_provider import LLMProvider, TextAnalyzer, TokenUsage, VisionAnalyzer
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "GoogleProvider",
    "LLMProvider",
    "OpenAIProvider",
    "TextAnalyzer",
    "TokenUsage",
    "VisionAnalyzer",
]
