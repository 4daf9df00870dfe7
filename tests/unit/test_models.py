"""Unit tests for tracker, record and intent models"""
import pytest
from pydantic import ValidationError

from tracker_agent.models.intent import IntentType, TrackingIntent
from tracker_agent.models.tracking import (
    Tracker,
    is_numeric,
    normalize_tracker_type,
    slugify_tracker_name,
)


class TestTrackerType:
    @pytest.mark.parametrize("value,expected", [
        ("nutrition", "nutrition"),
        ("Food", "nutrition"),
        ("exercise", "workout"),
        ("water", "hydration"),
        ("gardening", "custom"),
        (None, "custom"),
    ])
    def test_normalize(self, value, expected):
        assert normalize_tracker_type(value) == expected


class TestTracker:
    def test_name_is_slugified(self):
        tracker = Tracker(name="Water Intake!", type="water")
        assert tracker.name == "water-intake"
        assert tracker.display_name == "Water Intake"
        assert tracker.type == "hydration"

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            Tracker(name="  !! ")

    def test_metrics_default_by_type(self):
        assert Tracker(name="sleep", type="sleep").metrics == ["hours", "quality"]

    def test_declared_metrics_are_cleaned(self):
        tracker = Tracker(name="lifts", config={"metrics": ["Bench Press", "reps", "reps"]})
        assert tracker.metrics == ["bench_press", "reps"]

    def test_slug_length_limit(self):
        assert len(slugify_tracker_name("x" * 100)) == 48


class TestTrackingIntent:
    def test_unknown_intent_becomes_none(self):
        assert TrackingIntent(intent_type="delete").intent_type == IntentType.NONE

    @pytest.mark.parametrize("member", list(IntentType))
    def test_enum_member_is_kept(self, member):
        assert TrackingIntent(intent_type=member, confidence=0.9).intent_type == member

    def test_string_intent_is_normalised(self):
        assert TrackingIntent(intent_type=" Query ").intent_type == IntentType.QUERY

    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-2, 0.0), ("0.8", 0.8), ("high", 0.0)])
    def test_confidence_is_clamped(self, raw, expected):
        assert TrackingIntent(confidence=raw).confidence == expected

    def test_null_strings_become_none(self):
        intent = TrackingIntent(tracker_needed="null", description="  ")
        assert intent.tracker_needed is None
        assert intent.description is None


def test_is_numeric():
    assert is_numeric(3) and is_numeric(2.5)
    assert not is_numeric(True)
    assert not is_numeric("3")
    assert not is_numeric(float("nan"))
