"""Resilience patterns for completion calls

Retry with backoff for transient provider failures, ordered fallback
strategy chains, and prometheus metrics for both.
"""

from tracker_agent.resilience.retry import retry_with_backoff, is_retryable_error
from tracker_agent.resilience.fallback import FallbackStrategy, apply_strategies, first_match
from tracker_agent.resilience.metrics import (
    record_completion_call,
    record_completion_failure,
    record_retry,
    record_fallback,
)

__all__ = [
    # Retry
    "retry_with_backoff",
    "is_retryable_error",
    # Fallback
    "FallbackStrategy",
    "apply_strategies",
    "first_match",
    # Metrics
    "record_completion_call",
    "record_completion_failure",
    "record_retry",
    "record_fallback",
]
