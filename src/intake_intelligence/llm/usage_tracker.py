"""
Usage tracking for analyzer providers.

Keeps per-provider counters of calls, failures, tokens and images. The
tracker is shared by every provider instance and every concurrent pipeline
run, so all updates go through a lock.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Dict

from .providers.base_provider import TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class ProviderUsage:
    """Accumulated usage of one provider.

    Attributes:
        calls: Successful calls.
        failures: Failed calls.
        input_tokens: Prompt tokens consumed.
        output_tokens: Completion tokens generated.
        images: Images sent.
    """

    calls: int = 0
    failures: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    images: int = 0


class UsageTracker:
    """Thread-safe per-provider usage counters.

    Example:
        >>> tracker = UsageTracker()
        >>> tracker.track_call("openai", TokenUsage(120, 40, image_count=1))
        >>> tracker.snapshot()["openai"]["calls"]
        1
    """

    def __init__(self) -> None:
        self._usage: Dict[str, ProviderUsage] = {}
        self._lock = threading.Lock()

    def track_call(self, provider: str, tokens: TokenUsage) -> None:
        """Record a successful call."""
        with self._lock:
            usage = self._usage.setdefault(provider, ProviderUsage())
            usage.calls += 1
            usage.input_tokens += tokens.input_tokens
            usage.output_tokens += tokens.output_tokens
            usage.images += tokens.image_count
        logger.debug(
            f"{provider} usage: +{tokens.input_tokens} input, "
            f"+{tokens.output_tokens} output tokens"
        )

    def track_failure(self, provider: str) -> None:
        """Record a failed call."""
        with self._lock:
            self._usage.setdefault(provider, ProviderUsage()).failures += 1

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """Return a copy of all counters keyed by provider."""
        with self._lock:
            return {name: asdict(usage) for name, usage in self._usage.items()}

    def reset(self) -> None:
        with self._lock:
            self._usage.clear()
