"""
Analyzer interfaces and the shared base for LLM provider integrations.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from ...utils.error_handlers import ProviderError, classify_error

if TYPE_CHECKING:
    from ..usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """
    Token usage tracking.

    Attributes:
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens
        image_count: Number of images in request
    """

    input_tokens: int
    output_tokens: int
    image_count: int = 0


class VisionAnalyzer(ABC):
    """Capability interface: describe an image given a prompt."""

    @abstractmethod
    async def analyze(
        self, prompt: str, image: bytes, mime_type: str = "image/jpeg"
    ) -> str:
        """
        Analyze an image.

        Args:
            prompt: Instruction text
            image: Encoded image bytes
            mime_type: MIME type of ``image``

        Returns:
            Raw response text, expected to contain JSON

        Raises:
            ProviderError: Categorized provider failure
        """


class TextAnalyzer(ABC):
    """Capability interface: complete a text prompt."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Complete a prompt.

        Args:
            prompt: Instruction text

        Returns:
            Raw response text

        Raises:
            ProviderError: Categorized provider failure
        """


class LLMProvider(VisionAnalyzer, TextAnalyzer):
    """
    Abstract base class for LLM providers.

    Subclasses implement ``_call`` for their SDK and ``_translate_error`` to
    map SDK exceptions onto ProviderError categories. The base class records
    usage and failures on the shared UsageTracker.
    """

    PROVIDER_NAME = "base"

    def __init__(
        self,
        model: str,
        max_tokens: int = 1500,
        temperature: float = 0.2,
        timeout: float = 60.0,
        usage_tracker: Optional["UsageTracker"] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.usage_tracker = usage_tracker

    async def analyze(
        self, prompt: str, image: bytes, mime_type: str = "image/jpeg"
    ) -> str:
        if not image:
            raise ValueError("image cannot be empty")
        return await self._invoke(prompt, image, mime_type)

    async def complete(self, prompt: str) -> str:
        return await self._invoke(prompt, None, None)

    async def _invoke(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("prompt cannot be empty")

        try:
            content, tokens = await self._call(prompt, image, mime_type)
        except ProviderError:
            self._track_failure()
            raise
        except Exception as e:
            self._track_failure()
            translated = self._translate_error(e)
            logger.warning(
                f"{self.PROVIDER_NAME} call failed [{translated.category.value}]: {e}"
            )
            raise translated from e

        if self.usage_tracker is not None:
            self.usage_tracker.track_call(self.PROVIDER_NAME, tokens)
        return content

    def _track_failure(self) -> None:
        if self.usage_tracker is not None:
            self.usage_tracker.track_failure(self.PROVIDER_NAME)

    @abstractmethod
    async def _call(
        self, prompt: str, image: Optional[bytes], mime_type: Optional[str]
    ) -> Tuple[str, TokenUsage]:
        """
        Make the SDK call.

        Args:
            prompt: Text prompt
            image: Optional image bytes
            mime_type: MIME type of the image, if any

        Returns:
            Response text and token usage
        """

    def _translate_error(self, error: Exception) -> ProviderError:
        """Map an SDK exception to a ProviderError (generic classification)."""
        return ProviderError(
            f"{self.PROVIDER_NAME} API error: {error}",
            category=classify_error(error),
            provider=self.PROVIDER_NAME,
            status_code=getattr(error, "status_code", None),
            original_error=error,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r})"
