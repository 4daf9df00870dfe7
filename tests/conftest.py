"""Global test fixtures and utilities for tracker-agent tests"""
import json
import pytest
from datetime import datetime, timedelta
from typing import Any, Dict, List
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

from tracker_agent.agent.completion import CompletionClient
from tracker_agent.db.tracker_store import TrackerStore


# ============================================================================
# Clock Fixtures
# ============================================================================

# A Wednesday; the week (Sunday start) began 2024-03-10
FIXED_NOW = datetime(2024, 3, 13, 12, 0, 0, tzinfo=ZoneInfo("UTC"))


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    """Clock starting at FIXED_NOW"""
    return FakeClock(FIXED_NOW)


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def store(tmp_path, clock):
    """TrackerStore rooted in a temporary directory, UTC, fixed clock"""
    return TrackerStore(tmp_path / "trackers", tz_name="UTC", clock=clock)


@pytest.fixture
def nutrition_tracker(store):
    result = store.create_tracker({
        "name": "food",
        "display_name": "Food",
        "type": "nutrition",
        "config": {"metrics": ["calories", "protein"]},
    })
    return result.tracker


@pytest.fixture
def workout_tracker(store):
    result = store.create_tracker({
        "name": "workouts",
        "display_name": "Workouts",
        "type": "workout",
        "config": {"metrics": ["count", "duration"]},
    })
    return result.tracker


# ============================================================================
# Completion Fixtures
# ============================================================================

# System prompt fragments that identify each kind of completion request
ROLE_MARKERS = {
    "intent": "intent classifier",
    "tracker": "design personal trackers",
    "extract": "extract structured data",
    "correction": "correction parser",
}


class ScriptedCompletion:
    """
    Completion double that answers by request kind.

    Replies are JSON-serialised dicts (or raw strings); an Exception instance
    is raised instead. Unscripted kinds answer with an empty string.
    """

    def __init__(self):
        self.replies: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.client = AsyncMock(spec=CompletionClient)
        self.client.complete = AsyncMock(side_effect=self._complete)

    def script(self, kind: str, reply: Any) -> "ScriptedCompletion":
        self.replies[kind] = reply
        return self

    async def _complete(self, model: str, messages: List[Dict[str, str]]) -> str:
        system = messages[0]["content"].lower()
        kind = next((k for k, marker in ROLE_MARKERS.items() if marker in system), "unknown")
        self.calls.append(kind)

        reply = self.replies.get(kind, "")
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


@pytest.fixture
def completion():
    """Scripted completion service; use completion.client as the client"""
    return ScriptedCompletion()
