"""Retry with exponential backoff.

Failures are classified by :class:`~updater.classify.ErrorHandler`; only
errors it marks retryable are attempted again.
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TypeVar

from .classify import ErrorHandler
from .config import REGISTRY_API
from .logger import ActionLogger

T = TypeVar("T")

JITTER_RATIO = 0.1


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before the retry that follows a failed attempt.

    Args:
        attempt: Zero-based number of the attempt that just failed
        config: Retry configuration

    Returns:
        Seconds to wait, never negative
    """
    delay = min(config.base_delay * config.multiplier**attempt, config.max_delay)

    if config.jitter:
        delay += random.uniform(-JITTER_RATIO, JITTER_RATIO) * delay

    return max(0.0, delay)


class RetryMechanism:
    """Runs async operations, retrying transient failures."""

    def __init__(
        self,
        error_handler: ErrorHandler,
        log: ActionLogger,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.error_handler = error_handler
        self.log = log
        self.config = config or RetryConfig()
        self._sleep = sleep

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str = "operation",
        **overrides,
    ) -> T:
        """Execute an operation with retry logic.

        Args:
            operation: Zero-argument callable returning an awaitable
            context: Description used in log messages
            **overrides: RetryConfig fields to override for this call

        Returns:
            The operation's result

        Raises:
            The last error, once it is non-retryable or retries run out
        """
        config = replace(self.config, **overrides) if overrides else self.config
        total_attempts = config.max_retries + 1
        start = time.monotonic()

        for attempt in range(total_attempts):
            self.log.debug(f"🔄 Attempting {context} (attempt {attempt + 1}/{total_attempts})")

            try:
                result = await operation()
            except Exception as e:
                info = self.error_handler.handle_error(e, f"{context} - attempt {attempt + 1}")

                if not info.retryable:
                    self.log.info(f"❌ {context} failed with non-retryable error: {info.message}")
                    raise

                if attempt >= config.max_retries:
                    elapsed = time.monotonic() - start
                    self.log.info(f"❌ {context} failed after {attempt + 1} attempts in {elapsed:.2f}s")
                    raise

                delay = calculate_delay(attempt, config)
                self.log.info(f"⏳ {context} failed (attempt {attempt + 1}), retrying in {delay:.2f}s...")
                self.log.info(f"   Error: {info.message}")
                await self._sleep(delay)
                continue

            elapsed = time.monotonic() - start
            self.log.debug(f"✅ {context} succeeded after {attempt + 1} attempt(s) in {elapsed:.2f}s")
            return result

        # max_retries >= 0 guarantees at least one attempt
        raise RuntimeError(f"Unexpected end of retry loop for {context}")

    async def retry_network_request(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str = "network request",
    ) -> T:
        """Retry a registry request using the registry's backoff defaults."""
        return await self.execute_with_retry(
            operation,
            context,
            max_retries=REGISTRY_API.max_retries,
            base_delay=REGISTRY_API.retry_delay,
            max_delay=REGISTRY_API.max_retry_delay,
            multiplier=REGISTRY_API.retry_multiplier,
        )
