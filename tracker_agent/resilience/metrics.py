"""Prometheus metrics for completion calls and fallback strategies

Counters live in the default registry; a front-end that wants them
scraped can expose it with prometheus_client.start_http_server.
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# Total completion calls
# Labels: provider (openai/anthropic), status (success/failure)
completion_calls_total = Counter(
    'tracker_completion_calls_total',
    'Total number of completion calls',
    ['provider', 'status']
)

# Completion call duration histogram
completion_call_duration = Histogram(
    'tracker_completion_call_duration_seconds',
    'Duration of completion calls in seconds',
    ['provider'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 180.0, float('inf'))
)

# Completion failures counter
# Labels: provider, error_type (APITimeoutError/RateLimitError/etc)
completion_failures_total = Counter(
    'tracker_completion_failures_total',
    'Total number of completion failures',
    ['provider', 'error_type']
)

# Retry attempts counter
completion_retries_total = Counter(
    'tracker_completion_retries_total',
    'Total number of completion retry attempts',
    ['provider']
)

# Fallback strategies that changed a result
# Labels: chain (record_extraction/tracker_resolution/intent), strategy
fallback_executions_total = Counter(
    'tracker_fallback_executions_total',
    'Total number of fallback strategy executions that produced a result',
    ['chain', 'strategy']
)


def record_completion_call(provider: str, success: bool, duration: float) -> None:
    """
    Record completion call metrics.

    Args:
        provider: openai or anthropic
        success: Whether the call returned a message
        duration: Call duration in seconds
    """
    try:
        status = "success" if success else "failure"
        completion_calls_total.labels(provider=provider, status=status).inc()
        completion_call_duration.labels(provider=provider).observe(duration)
    except Exception as e:
        logger.error(f"Failed to record completion call: {e}")


def record_completion_failure(provider: str, error_type: str) -> None:
    try:
        completion_failures_total.labels(provider=provider, error_type=error_type).inc()
    except Exception as e:
        logger.error(f"Failed to record completion failure: {e}")


def record_retry(provider: str) -> None:
    try:
        completion_retries_total.labels(provider=provider).inc()
        logger.debug(f"[METRICS] Retry attempt recorded for {provider}")
    except Exception as e:
        logger.error(f"Failed to record retry: {e}")


def record_fallback(chain: str, strategy: str) -> None:
    """
    Record a fallback strategy that produced or changed a result.

    Args:
        chain: Which fallback chain ran (record_extraction, tracker_resolution, ...)
        strategy: Strategy name within the chain
    """
    try:
        fallback_executions_total.labels(chain=chain, strategy=strategy).inc()
        logger.debug(f"[METRICS] Fallback {chain}/{strategy}")
    except Exception as e:
        logger.error(f"Failed to record fallback: {e}")
