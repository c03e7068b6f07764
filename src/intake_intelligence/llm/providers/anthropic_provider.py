"""Anthropic (Claude) API Provider Implementation.

This module provides integration with Anthropic's Claude API, supporting both
text-only and vision-enabled prompts through the async client.

The provider handles:
- Lazy client initialization
- Image format detection and base64 encoding for vision requests
- Token usage extraction
- Translation of SDK errors to categorized ProviderError instances

Note:
    Anthropic's API does not support structured output formats natively.
    Prompts ask for JSON and the response parser recovers it.
"""

import base64
import logging
import os
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

import anthropic

from ...models.data_structures import ErrorCategory
from ...utils.error_handlers import ProviderError
from .base_provider import LLMProvider, TokenUsage

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Concrete provider for Anthropic's Claude models.

    Attributes:
        api_key: The API key for Anthropic authentication.
        PROVIDER_NAME: Constant identifier for this provider.

    Example:
        >>> provider = AnthropicProvider(api_key="sk-ant-...")
        >>> text = await provider.complete("Extract project details ...")
    """

    PROVIDER_NAME = "anthropic"

    # Image constraints per Anthropic API documentation
    MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024  # 5 MB

    # Image format detection via magic numbers
    IMAGE_SIGNATURES = {
        b"\x89PNG": "image/png",
        b"\xff\xd8\xff": "image/jpeg",
        b"RIFF": "image/webp",
        b"GIF87a": "image/gif",
        b"GIF89a": "image/gif",
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-5-sonnet-20241022",
        **kwargs: Any,
    ) -> None:
        """Initialize the Anthropic provider with API credentials.

        Args:
            api_key: Anthropic API key. If not provided, attempts to load
                from ANTHROPIC_API_KEY environment variable.
            model: Claude model identifier.
            **kwargs: max_tokens, temperature, timeout, usage_tracker.

        Raises:
            ValueError: If no API key is provided or found in environment.
        """
        resolved_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not resolved_key:
            raise ValueError(
                "Anthropic API key required. Provide via constructor or "
                "ANTHROPIC_API_KEY environment variable."
            )

        super().__init__(model=model, **kwargs)
        self.api_key = resolved_key
        logger.info(f"AnthropicProvider initialized (model: {model})")

    @cached_property
    def client(self) -> anthropic.AsyncAnthropic:
        """Lazy-loaded async Anthropic API client."""
        return anthropic.AsyncAnthropic(
            api_key=self.api_key, timeout=self.timeout, max_retries=0
        )

    def _detect_image_format(self, image_bytes: bytes) -> str:
        """Detect image MIME type from magic numbers.

        Raises:
            ValueError: If the format is not supported by the API.
        """
        for signature, media_type in self.IMAGE_SIGNATURES.items():
            if image_bytes.startswith(signature):
                return media_type
        raise ValueError("Unsupported image format for Anthropic API")

    async def _call(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> Tuple[str, TokenUsage]:
        messages: List[Dict[str, Any]] = []

        if image is not None:
            if len(image) > self.MAX_IMAGE_SIZE_BYTES:
                raise ValueError(
                    f"Image size {len(image)} bytes exceeds "
                    f"{self.MAX_IMAGE_SIZE_BYTES} byte limit"
                )
            media_type = self._detect_image_format(image)
            image_base64 = base64.b64encode(image).decode("utf-8")
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": image_base64,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            )
        else:
            messages.append({"role": "user", "content": prompt})

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=messages,
        )

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        tokens = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            image_count=1 if image is not None else 0,
        )
        return content, tokens

    def _translate_error(self, error: Exception) -> ProviderError:
        if isinstance(error, anthropic.APITimeoutError):
            category = ErrorCategory.TIMEOUT
        elif isinstance(error, anthropic.APIConnectionError):
            category = ErrorCategory.CONNECTION
        elif isinstance(error, anthropic.RateLimitError):
            category = ErrorCategory.RATE_LIMIT
        elif isinstance(
            error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)
        ):
            category = ErrorCategory.AUTHENTICATION
        elif isinstance(error, anthropic.APIStatusError) and error.status_code >= 500:
            category = ErrorCategory.SERVER_ERROR
        else:
            return super()._translate_error(error)

        return ProviderError(
            f"Anthropic API error: {error}",
            category=category,
            provider=self.PROVIDER_NAME,
            status_code=getattr(error, "status_code", None),
            original_error=error,
        )
