"""
Retry-with-exponential-backoff executor for remote calls.

Only rate-limit failures are retried. Everything else, including
content-policy refusals, propagates on the first occurrence.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.error_handling import (
    ContentPolicyRefusalError,
    GenerationCancelledError,
    RateLimitedError,
    RetriesExhaustedError,
)
from lingoloop.common.logger import app_logger

logger = app_logger.getChild("backoff")

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
RATE_LIMIT_CODES = frozenset({"rate_limit_exceeded", "rate_limited"})
RATE_LIMIT_SIGNATURES = ("too many requests", "rate_limit_exceeded", "rate limit")


def is_rate_limited(error: BaseException) -> bool:
    """Return True when ``error`` looks like an upstream rate limit."""
    if isinstance(error, (ContentPolicyRefusalError, GenerationCancelledError)):
        return False
    if isinstance(error, RateLimitedError):
        return True

    for attr in ("status_code", "status"):
        if getattr(error, attr, None) == RATE_LIMIT_STATUS:
            return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() in RATE_LIMIT_CODES:
        return True

    text = str(error).lower()
    return any(signature in text for signature in RATE_LIMIT_SIGNATURES)


def retry_after_hint(error: BaseException) -> Optional[float]:
    """Extract a provider ``Retry-After`` value in seconds, if any."""
    hint = getattr(error, "retry_after", None)
    if hint is not None:
        return float(hint)

    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class BackoffController:
    """
    Executes a coroutine factory, retrying retryable failures.

    Delay before retry ``k`` (0-indexed) is
    ``base_delay * 2**k + uniform(0, max_jitter)`` seconds. At most
    ``max_retries + 1`` attempts are made.
    """

    def __init__(
        self,
        max_retries: int = 8,
        base_delay: float = 2.0,
        max_jitter: float = 2.0,
        token: Optional[CancellationToken] = None,
        classifier: Callable[[BaseException], bool] = is_rate_limited,
        rng: Optional[random.Random] = None,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self.token = token
        self.classifier = classifier
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int, base_delay: Optional[float] = None) -> float:
        base = self.base_delay if base_delay is None else base_delay
        jitter = self._rng.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return base * (2 ** attempt) + jitter

    async def _sleep(self, seconds: float) -> None:
        if self.token is not None:
            await self.token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        description: str = "remote call",
    ) -> T:
        """
        Run ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            max_retries: Override of the configured retry count
            base_delay: Override of the configured base delay, in seconds
            description: Label used in log lines

        Returns:
            The operation's result

        Raises:
            RetriesExhaustedError: after ``max_retries + 1`` retryable failures
            GenerationCancelledError: if the session token fires
            Exception: any non-retryable failure, unchanged, on first occurrence
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            if self.token is not None:
                self.token.raise_if_cancelled()
            try:
                if self.token is not None:
                    return await self.token.run(operation())
                return await operation()
            except GenerationCancelledError:
                raise
            except Exception as e:
                if not self.classifier(e):
                    raise
                if attempt >= retries:
                    logger.error(
                        f"{description} still rate limited after {attempt + 1} attempts: {e}"
                    )
                    raise RetriesExhaustedError(
                        attempts=attempt + 1,
                        last_error=e,
                        retry_after=retry_after_hint(e)
                    ) from e

                delay = self.compute_delay(attempt, base_delay)
                logger.warning(
                    f"Retry {attempt + 1}/{retries} for {description} "
                    f"in {delay:.2f}s after {type(e).__name__}: {e}",
                    extra={"data": {"attempt": attempt + 1, "delay_seconds": round(delay, 3)}}
                )
                await self._sleep(delay)
                attempt += 1


def backoff_from_config(config: Any, token: Optional[CancellationToken] = None) -> BackoffController:
    """Build a controller from a ``GenerationConfig``."""
    return BackoffController(
        max_retries=config.max_retries,
        base_delay=config.base_delay_ms / 1000.0,
        max_jitter=config.jitter_ms / 1000.0,
        token=token,
    )
