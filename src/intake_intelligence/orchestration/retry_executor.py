"""
Retry executor for analyzer calls.

Runs an async operation with bounded exponential backoff plus jitter and
records every attempt, retry and terminal outcome in the run ledger. All
waits are ``asyncio.sleep`` suspensions; the run deadline stored on the
ledger caps how long the executor keeps retrying.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..models.data_structures import RetryEvent, StageName
from ..utils.error_handlers import (
    classify_error,
    describe_error,
    get_retry_delay,
    is_retriable_error,
)
from .run_ledger import RunLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """
    Runs analyzer operations with retries.

    ``max_retries`` is the total number of attempts. Attempt ``n`` (0-based)
    that fails waits ``base_delay * 2**n + uniform(0, max_jitter)`` seconds
    before the next one. Validation and authentication failures are raised
    on the first occurrence. The last error is always re-raised unchanged.

    Attributes:
        max_retries: Default number of attempts.
        base_delay: Backoff base in seconds.
        max_jitter: Upper bound of the random jitter in seconds.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        stage: StageName,
        ledger: RunLedger,
        max_retries: Optional[int] = None,
        label: Optional[str] = None,
    ) -> T:
        """
        Await ``operation()`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory. Called once per attempt.
            stage: Stage the call belongs to, for the ledger.
            ledger: Ledger of the current run.
            max_retries: Attempts for this call; defaults to ``self.max_retries``.
            label: Optional name of the call (e.g. image id) for the ledger.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error raised by ``operation``.
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        label = label or stage.value
        loop = asyncio.get_running_loop()

        for attempt in range(attempts):
            ledger.record_retry_event(
                RetryEvent(stage=stage, label=label, attempt=attempt + 1, outcome="attempt")
            )
            try:
                result = await operation()
            except Exception as e:
                category = classify_error(e)
                error_text = describe_error(e)

                if not is_retriable_error(e) or attempt == attempts - 1:
                    ledger.record_retry_event(
                        RetryEvent(
                            stage=stage,
                            label=label,
                            attempt=attempt + 1,
                            outcome="failure",
                            error=error_text,
                            category=category,
                        )
                    )
                    logger.warning(
                        f"{label} failed after {attempt + 1} attempt(s) "
                        f"[{category.value}]: {error_text}",
                        extra={"processing_id": ledger.processing_id},
                    )
                    raise

                delay = get_retry_delay(attempt, self.base_delay, self.max_jitter)
                if ledger.deadline is not None and loop.time() + delay >= ledger.deadline:
                    ledger.record_retry_event(
                        RetryEvent(
                            stage=stage,
                            label=label,
                            attempt=attempt + 1,
                            outcome="failure",
                            error=f"{error_text} (run deadline reached)",
                            category=category,
                        )
                    )
                    logger.warning(
                        f"{label}: no time left for another attempt, giving up",
                        extra={"processing_id": ledger.processing_id},
                    )
                    raise

                ledger.record_retry_event(
                    RetryEvent(
                        stage=stage,
                        label=label,
                        attempt=attempt + 1,
                        outcome="retry",
                        delay=delay,
                        error=error_text,
                        category=category,
                    )
                )
                logger.info(
                    f"{label} attempt {attempt + 1}/{attempts} failed "
                    f"[{category.value}], retrying in {delay:.2f}s",
                    extra={"processing_id": ledger.processing_id},
                )
                await self._sleep(delay)
                continue

            ledger.record_retry_event(
                RetryEvent(stage=stage, label=label, attempt=attempt + 1, outcome="success")
            )
            return result

        # Unreachable: the loop either returns or raises.
        raise RuntimeError("retry loop exited without result")
