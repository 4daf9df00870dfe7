"""Ordered fallback strategy chains

Two shapes are used across the services:

- apply_strategies: every strategy sees the current result and may replace
  it (record extraction: heuristic fallback, calorie augmentation,
  cross-validation).
- first_match: strategies are tried in order and the first non-None answer
  wins (tracker resolution).

Strategies are plain synchronous functions; the chains never call the
completion service.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from tracker_agent.resilience.metrics import record_fallback

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class FallbackStrategy(Generic[T]):
    """
    A named step in a fallback chain.

    Attributes:
        name: Human-readable name for logging and metrics
        handler: Callable returning a replacement result, or None to pass
        priority: Lower runs first
    """
    name: str
    handler: Callable[..., Optional[T]]
    priority: int


def _ordered(strategies: List[FallbackStrategy]) -> List[FallbackStrategy]:
    return sorted(strategies, key=lambda s: s.priority)


def apply_strategies(
    chain: str,
    strategies: List[FallbackStrategy],
    result: T,
    *args: Any,
    **kwargs: Any
) -> Tuple[T, List[str]]:
    """
    Run every strategy in priority order, threading the result through.

    Each handler is called as handler(result, *args, **kwargs). A non-None
    return value replaces the result and the strategy is recorded as applied.

    Args:
        chain: Chain name for logs and metrics
        strategies: Strategies to run
        result: Starting result

    Returns:
        Tuple of (final result, names of strategies that changed it)
    """
    applied: List[str] = []
    for strategy in _ordered(strategies):
        replacement = strategy.handler(result, *args, **kwargs)
        if replacement is None:
            continue
        logger.info(f"[FALLBACK] {chain}: strategy '{strategy.name}' applied")
        record_fallback(chain, strategy.name)
        applied.append(strategy.name)
        result = replacement
    return result, applied


def first_match(
    chain: str,
    strategies: List[FallbackStrategy],
    *args: Any,
    **kwargs: Any
) -> Tuple[Optional[Any], Optional[str]]:
    """
    Try strategies in priority order until one returns a result.

    Returns:
        Tuple of (result, strategy name), or (None, None) when nothing matched
    """
    for strategy in _ordered(strategies):
        found = strategy.handler(*args, **kwargs)
        if found is not None:
            logger.debug(f"[FALLBACK] {chain}: matched by '{strategy.name}'")
            record_fallback(chain, strategy.name)
            return found, strategy.name

    logger.debug(f"[FALLBACK] {chain}: all {len(strategies)} strategies exhausted")
    return None, None
