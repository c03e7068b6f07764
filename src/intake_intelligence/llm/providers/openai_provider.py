"""
OpenAI provider for vision and text analysis.

Implements the VisionAnalyzer and TextAnalyzer interfaces with the async
OpenAI client. Retries are not done here: the pipeline's RetryExecutor owns
retry policy, so the SDK client is created with ``max_retries=0`` and every
SDK exception is translated to a categorized ProviderError.

Example:
    >>> provider = OpenAIProvider(api_key="sk-proj-...", model="gpt-4o")
    >>> text = await provider.analyze("Describe this site", image_bytes)

Note:
    Requires 'openai' package: pip install openai>=1.3.0
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Tuple

import openai

from ...models.data_structures import ErrorCategory
from ...utils.error_handlers import ProviderError
from .base_provider import LLMProvider, TokenUsage

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    OpenAI chat-completions provider.

    Attributes:
        api_key: OpenAI API authentication key.
        base_url: Optional custom API endpoint URL.
        organization: Optional organization ID.
    """

    PROVIDER_NAME = "openai"

    # Image constraints
    MAX_IMAGE_SIZE_MB = 20
    SUPPORTED_IMAGE_FORMATS = {"image/jpeg", "image/png", "image/gif", "image/webp"}

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (format: 'sk-...' or 'sk-proj-...').
            model: Chat model identifier.
            base_url: Optional custom base URL for Azure OpenAI or proxies.
            organization: Optional organization ID for billing tracking.
            **kwargs: max_tokens, temperature, timeout, usage_tracker.

        Raises:
            ValueError: If api_key is empty.
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key cannot be empty")

        if not api_key.startswith("sk-"):
            logger.warning(
                "API key does not match expected format (sk-... or sk-proj-...)"
            )

        super().__init__(model=model, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self.organization = organization
        self._client: Optional[openai.AsyncOpenAI] = None

        masked_key = f"{api_key[:8]}...{api_key[-4:]}" if len(api_key) > 12 else "***"
        logger.info(f"OpenAI provider initialized (key: {masked_key}, model: {model})")

    def _get_client(self) -> openai.AsyncOpenAI:
        """Create the async client on first use."""
        if self._client is None:
            client_kwargs: Dict[str, Any] = {
                "api_key": self.api_key,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            if self.organization:
                client_kwargs["organization"] = self.organization

            self._client = openai.AsyncOpenAI(**client_kwargs)
            logger.debug("OpenAI client initialized successfully")
        return self._client

    async def _call(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> Tuple[str, TokenUsage]:
        if image is not None:
            self._validate_image(image, mime_type)

        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=self._build_messages(prompt, image, mime_type),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        if not response.choices:
            raise ProviderError(
                "API returned empty choices list",
                category=ErrorCategory.SERVER_ERROR,
                provider=self.PROVIDER_NAME,
            )

        content = response.choices[0].message.content or ""
        usage = response.usage
        tokens = TokenUsage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            image_count=1 if image is not None else 0,
        )
        return content, tokens

    def _build_messages(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> List[Dict[str, Any]]:
        """
        Build OpenAI API message format.

        Args:
            prompt: User prompt text.
            image: Optional image bytes.
            mime_type: MIME type of the image.

        Returns:
            List of message dictionaries in OpenAI format.
        """
        if image is None:
            return [{"role": "user", "content": prompt}]

        image_b64 = base64.b64encode(image).decode("utf-8")
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{mime_type or 'image/jpeg'};base64,{image_b64}"
                        },
                    },
                ],
            }
        ]

    def _validate_image(self, image: bytes, mime_type: Optional[str]) -> None:
        size_mb = len(image) / (1024 * 1024)
        if size_mb > self.MAX_IMAGE_SIZE_MB:
            raise ValueError(
                f"Image is {size_mb:.1f} MB, limit is {self.MAX_IMAGE_SIZE_MB} MB"
            )
        if mime_type and mime_type not in self.SUPPORTED_IMAGE_FORMATS:
            raise ValueError(f"Unsupported image format for OpenAI: {mime_type}")

    def _translate_error(self, error: Exception) -> ProviderError:
        # APITimeoutError subclasses APIConnectionError, so it is checked first.
        if isinstance(error, openai.APITimeoutError):
            category = ErrorCategory.TIMEOUT
        elif isinstance(error, openai.APIConnectionError):
            category = ErrorCategory.CONNECTION
        elif isinstance(error, openai.RateLimitError):
            category = ErrorCategory.RATE_LIMIT
        elif isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            category = ErrorCategory.AUTHENTICATION
        elif isinstance(error, openai.InternalServerError):
            category = ErrorCategory.SERVER_ERROR
        else:
            return super()._translate_error(error)

        return ProviderError(
            f"OpenAI API error: {error}",
            category=category,
            provider=self.PROVIDER_NAME,
            status_code=getattr(error, "status_code", None),
            original_error=error,
        )
