"""
Google Gemini provider for vision and text analysis.

Implements the VisionAnalyzer and TextAnalyzer interfaces with the
``google-generativeai`` SDK's async ``generate_content_async`` call. Images
are handed to the SDK as PIL images.

Example:
    >>> provider = GoogleProvider(api_key="AIza...", model="gemini-1.5-flash")
    >>> text = await provider.analyze("Describe this site", image_bytes)

Note:
    Requires 'google-generativeai' package: pip install google-generativeai
"""

import io
import logging
import types
from typing import Any, Dict, List, Optional, Tuple, Union

from PIL import Image

from ...models.data_structures import ErrorCategory
from ...utils.error_handlers import ProviderError
from .base_provider import LLMProvider, TokenUsage

logger = logging.getLogger(__name__)


class GoogleProvider(LLMProvider):
    """
    Google AI Studio (Gemini) provider.

    Attributes:
        api_key: Google AI API key.
    """

    PROVIDER_NAME = "google"

    # Exception type names raised by google.api_core, mapped to categories.
    ERROR_TYPE_CATEGORIES: Dict[str, ErrorCategory] = {
        "ResourceExhausted": ErrorCategory.RATE_LIMIT,
        "TooManyRequests": ErrorCategory.RATE_LIMIT,
        "DeadlineExceeded": ErrorCategory.TIMEOUT,
        "Unauthenticated": ErrorCategory.AUTHENTICATION,
        "PermissionDenied": ErrorCategory.AUTHENTICATION,
        "Unavailable": ErrorCategory.SERVER_ERROR,
        "ServiceUnavailable": ErrorCategory.SERVER_ERROR,
        "InternalServerError": ErrorCategory.SERVER_ERROR,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        **kwargs: Any,
    ) -> None:
        """
        Initialize Google AI provider with credentials and configuration.

        Args:
            api_key: Google AI API key (format: 'AIza...').
            model: Gemini model identifier.
            **kwargs: max_tokens, temperature, timeout, usage_tracker.

        Raises:
            ValueError: If api_key is empty.
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key cannot be empty")

        if not api_key.startswith("AIza"):
            logger.warning("API key does not match expected format (AIza...)")

        super().__init__(model=model, **kwargs)
        self.api_key = api_key
        self._genai: Optional[types.ModuleType] = None

        masked_key = f"{api_key[:8]}...{api_key[-4:]}" if len(api_key) > 12 else "***"
        logger.info(f"Google provider initialized (key: {masked_key}, model: {model})")

    def _get_genai(self) -> types.ModuleType:
        """Import and configure the SDK on first use."""
        if self._genai is None:
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            logger.debug("Google AI Studio configured successfully")
            self._genai = genai
        return self._genai

    async def _call(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> Tuple[str, TokenUsage]:
        genai = self._get_genai()
        model_instance = genai.GenerativeModel(self.model)

        response = await model_instance.generate_content_async(
            self._build_content(prompt, image),
            generation_config={
                "max_output_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
            request_options={"timeout": self.timeout},
        )

        content_text = response.text
        input_tokens = 0
        output_tokens = 0
        usage = getattr(response, "usage_metadata", None)
        if usage is not None:
            input_tokens = getattr(usage, "prompt_token_count", 0) or 0
            output_tokens = getattr(usage, "candidates_token_count", 0) or 0

        tokens = TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            image_count=1 if image is not None else 0,
        )
        return content_text, tokens

    def _build_content(
        self, prompt: str, image: Optional[bytes]
    ) -> Union[str, List[Union[str, Image.Image]]]:
        """
        Build Gemini API content format.

        Args:
            prompt: User prompt text.
            image: Optional image bytes.

        Returns:
            String for text-only requests, or list of content parts for vision requests.

        Raises:
            ValueError: If PIL cannot decode the image.
        """
        if image is None:
            return prompt

        try:
            pil_image = Image.open(io.BytesIO(image))
            pil_image.load()
        except Exception as e:
            raise ValueError(f"Failed to convert image to PIL format: {e}") from e
        return [prompt, pil_image]

    def _translate_error(self, error: Exception) -> ProviderError:
        category = self.ERROR_TYPE_CATEGORIES.get(type(error).__name__)
        if category is None:
            return super()._translate_error(error)

        code = getattr(error, "code", None)
        return ProviderError(
            f"Google AI API error: {error}",
            category=category,
            provider=self.PROVIDER_NAME,
            status_code=code if isinstance(code, int) else None,
            original_error=error,
        )
