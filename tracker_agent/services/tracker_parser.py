"""Turn a free-text tracker description into a tracker definition"""
import logging
import re
from typing import Any, Dict, List, Optional

from tracker_agent.agent.completion import CompletionClient
from tracker_agent.models.tracking import (
    DEFAULT_METRICS,
    TrackerType,
    normalize_tracker_type,
    slugify_tracker_name,
)
from tracker_agent.utils.heuristic_parsers import detect_tracker_type
from tracker_agent.utils.json_extraction import extract_json_object

logger = logging.getLogger(__name__)

# Words that describe the request rather than the thing being tracked
NAME_STOP_WORDS = {
    "a", "an", "the", "my", "me", "i", "to", "for", "of", "and", "new",
    "create", "make", "add", "set", "up", "start", "tracking", "tracker",
    "track", "want", "would", "like", "please", "can", "you", "log", "how",
    "many", "much", "daily", "every", "day",
}

MAX_NAME_WORDS = 3

TRACKER_PROMPT = """Parse the following text into a tracker configuration.

Text: "{description}"

Respond with ONLY a JSON object:
{{
  "name": "short-lowercase-name",
  "displayName": "Human Readable Name",
  "type": "nutrition|workout|sleep|habit|mood|hydration|medication|custom",
  "description": "what this tracker is for",
  "metrics": ["metric_one", "metric_two"],
  "goal": "optional goal description or null"
}}

Metrics are the numeric or short-text fields recorded with every entry
(e.g. calories and protein for food, count and duration for exercise)."""


def _fallback_definition(description: str) -> Dict[str, Any]:
    """Keyword type detection plus a slug from the meaningful words"""
    tracker_type = detect_tracker_type(description) or TrackerType.CUSTOM.value
    words = [
        w for w in re.findall(r"[a-z0-9]+", description.lower())
        if w not in NAME_STOP_WORDS and len(w) > 1
    ]
    name = slugify_tracker_name("-".join(words[:MAX_NAME_WORDS])) or tracker_type
    return {
        "name": name,
        "display_name": name.replace("-", " ").title(),
        "type": tracker_type,
        "description": description,
        "config": {"metrics": list(DEFAULT_METRICS.get(tracker_type, []))},
    }


def _definition_from_response(parsed: Dict[str, Any], description: str) -> Optional[Dict[str, Any]]:
    name = slugify_tracker_name(parsed.get("name") or parsed.get("displayName") or "")
    if not name:
        return None

    tracker_type = normalize_tracker_type(parsed.get("type"))
    metrics: List[Any] = parsed.get("metrics") or parsed.get("fields") or []
    if not isinstance(metrics, list):
        metrics = [metrics]

    goal = parsed.get("goal")
    return {
        "name": name,
        "display_name": parsed.get("displayName") or parsed.get("display_name") or "",
        "type": tracker_type,
        "description": parsed.get("description") or description,
        "config": {
            "metrics": metrics or list(DEFAULT_METRICS.get(tracker_type, [])),
            "goal": str(goal) if goal not in (None, "", "null") else None,
        },
    }


async def parse_tracker_from_natural_language(
    description: str,
    client: Optional[CompletionClient],
    model: str
) -> Optional[Dict[str, Any]]:
    """
    Synthesize a tracker definition from a description

    Args:
        description: e.g. "track my daily water intake"
        client: Completion client; None skips straight to the keyword fallback
        model: Model name for the client

    Returns:
        Definition dict accepted by TrackerStore.create_tracker, or None for
        an empty description
    """
    description = (description or "").strip()
    if not description:
        return None

    if client is not None:
        try:
            content = await client.complete(model, [
                {"role": "system", "content": "You design personal trackers. Output only valid JSON."},
                {"role": "user", "content": TRACKER_PROMPT.format(description=description)},
            ])
            definition = _definition_from_response(extract_json_object(content), description)
            if definition:
                logger.info(f"[TRACKER] Parsed definition '{definition['name']}' ({definition['type']})")
                return definition
            logger.warning(f"[TRACKER] Unusable tracker definition from model: {content[:120]!r}")
        except Exception as e:
            logger.warning(f"[TRACKER] Completion failed, using keyword fallback: {e}")

    definition = _fallback_definition(description)
    logger.info(f"[TRACKER] Fallback definition '{definition['name']}' ({definition['type']})")
    return definition
