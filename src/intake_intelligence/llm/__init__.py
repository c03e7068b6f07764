"""
LLM integration modules for the Intake Intelligence System.

This package contains the analyzer interfaces, providers, prompts, response
parsing and usage tracking.
"""

from .analyzer_gateway import AnalyzerSet, ProviderConfig, ProviderFactory, build_analyzers
from .prompt_library import PromptLibrary, PromptTemplate
from .providers.anthropic_provider import AnthropicProvider
from .providers.base_provider import LLMProvider, TextAnalyzer, VisionAnalyzer
from .providers.google_provider import GoogleProvider
from .providers.openai_provider import OpenAIProvider
from .response_parser import extract_partial_findings, parse_json_payload
from .usage_tracker import UsageTracker

__all__ = [
    "AnalyzerSet",
    "ProviderConfig",
    "ProviderFactory",
    "build_analyzers",
    "PromptLibrary",
    "PromptTemplate",
    "AnthropicProvider",
    "LLMProvider",
    "TextAnalyzer",
    "VisionAnalyzer",
    "GoogleProvider",
    "OpenAIProvider",
    "extract_partial_findings",
    "parse_json_payload",
    "UsageTracker",
]
