"""Tests for tracker definition synthesis"""
import pytest

from tracker_agent.services.tracker_parser import parse_tracker_from_natural_language


@pytest.mark.asyncio
async def test_model_definition(completion):
    completion.script("tracker", {
        "name": "Water Intake",
        "displayName": "Water",
        "type": "water",
        "description": "Glasses of water per day",
        "fields": ["glasses"],
        "goal": "8 glasses",
    })

    definition = await parse_tracker_from_natural_language("track my water", completion.client, "test-model")

    assert definition == {
        "name": "water-intake",
        "display_name": "Water",
        "type": "hydration",
        "description": "Glasses of water per day",
        "config": {"metrics": ["glasses"], "goal": "8 glasses"},
    }


@pytest.mark.asyncio
async def test_model_definition_without_metrics_gets_type_defaults(completion):
    completion.script("tracker", {"name": "sleep", "type": "sleep", "goal": "null"})

    definition = await parse_tracker_from_natural_language("sleep tracker", completion.client, "test-model")

    assert definition["config"] == {"metrics": ["hours", "quality"], "goal": None}
    assert definition["description"] == "sleep tracker"


@pytest.mark.asyncio
async def test_keyword_fallback_without_client():
    definition = await parse_tracker_from_natural_language("create a tracker for water intake", None, "unused")

    assert definition["name"] == "water-intake"
    assert definition["display_name"] == "Water Intake"
    assert definition["type"] == "hydration"
    assert definition["config"]["metrics"] == ["amount_ml"]


@pytest.mark.asyncio
async def test_completion_failure_uses_keyword_fallback(completion):
    completion.script("tracker", RuntimeError("connection reset"))

    definition = await parse_tracker_from_natural_language("daily meditation minutes", completion.client, "test-model")

    assert definition["name"] == "meditation-minutes"
    assert definition["type"] == "habit"


@pytest.mark.asyncio
async def test_unusable_reply_uses_keyword_fallback(completion):
    completion.script("tracker", "Sure, I can help with that!")

    definition = await parse_tracker_from_natural_language("my reading", completion.client, "test-model")

    assert definition["name"] == "reading"
    assert definition["type"] == "custom"
    assert definition["config"]["metrics"] == ["value"]


@pytest.mark.asyncio
async def test_empty_description(completion):
    assert await parse_tracker_from_natural_language("   ", completion.client, "test-model") is None
    assert completion.calls == []
