"""Retry logic with exponential backoff and jitter

Completion calls are retried only when the failure is transient (timeouts,
rate limits, 5xx responses). Anything else is raised on the first attempt
so a bad API key or malformed request fails fast.
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Any, TypeVar
import httpx

from tracker_agent.resilience.metrics import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 2
BASE_DELAY = 1.0  # seconds
MAX_DELAY = 30.0  # seconds
JITTER = 0.1  # 10% random jitter

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

# Same class names in both the openai and anthropic SDKs
RETRYABLE_SDK_ERRORS = ('RateLimitError', 'APITimeoutError', 'APIConnectionError', 'InternalServerError')


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Args:
        exc: The exception to check

    Returns:
        True if error should be retried, False otherwise
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True

    if exc.__class__.__name__ in RETRYABLE_SDK_ERRORS:
        return True

    return False


def calculate_backoff(attempt: int) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY) +/- 10%

    Example:
        Attempt 0: ~1s
        Attempt 1: ~2s
        Attempt 2: ~4s
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    label: str = "completion",
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        label: Name used in logs and the retry counter (usually the provider)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        text = await retry_with_backoff(client.chat.completions.create, model=m, messages=msgs)
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if attempt == max_retries:
                if max_retries:
                    logger.error(f"[RETRY] All {max_retries} retries exhausted for {label}")
                raise

            if not is_retryable_error(e):
                logger.warning(
                    f"[RETRY] Non-retryable error for {label}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            backoff = calculate_backoff(attempt)
            record_retry(label)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {label} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )
            await asyncio.sleep(backoff)

    raise RuntimeError("Retry loop exited without a result")
