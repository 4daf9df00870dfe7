"""Unit tests for ordered fallback strategy chains"""
from tracker_agent.resilience.fallback import FallbackStrategy, apply_strategies, first_match


class TestApplyStrategies:
    """Test result threading through every strategy"""

    def test_strategies_run_in_priority_order(self):
        strategies = [
            FallbackStrategy("double", lambda result: result * 2, priority=2),
            FallbackStrategy("add_one", lambda result: result + 1, priority=1),
        ]

        result, applied = apply_strategies("test", strategies, 3)

        assert result == 8
        assert applied == ["add_one", "double"]

    def test_none_leaves_result_unchanged(self):
        strategies = [
            FallbackStrategy("skip", lambda result, extra: None, priority=1),
            FallbackStrategy("append", lambda result, extra: result + [extra], priority=2),
        ]

        result, applied = apply_strategies("test", strategies, [], "x")

        assert result == ["x"]
        assert applied == ["append"]

    def test_empty_chain(self):
        assert apply_strategies("test", [], {"a": 1}) == ({"a": 1}, [])


class TestFirstMatch:
    """Test first-answer-wins chains"""

    def test_first_non_none_wins(self):
        calls = []

        def miss(value):
            calls.append("miss")
            return None

        def hit(value):
            calls.append("hit")
            return value.upper()

        def never(value):
            calls.append("never")
            return "unreachable"

        strategies = [
            FallbackStrategy("never", never, priority=3),
            FallbackStrategy("hit", hit, priority=2),
            FallbackStrategy("miss", miss, priority=1),
        ]

        assert first_match("test", strategies, "abc") == ("ABC", "hit")
        assert calls == ["miss", "hit"]

    def test_nothing_matches(self):
        strategies = [FallbackStrategy("miss", lambda value: None, priority=1)]
        assert first_match("test", strategies, "abc") == (None, None)
