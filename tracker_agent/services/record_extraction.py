"""
Natural-language record extraction

parse_record asks the completion model for a structured record and then runs
an ordered chain of corrections built on the heuristic extractors:

1. heuristic_fallback     model gave nothing usable -> heuristic output verbatim
2. calorie_augmentation   nutrition record without calories -> heuristic estimate
3. cross_validation       a number the user typed is missing from the record
                          and the heuristic derives that same number -> use it

The extraction only fails when the record is still empty after the chain.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tracker_agent.agent.completion import CompletionClient
from tracker_agent.models.intent import ParseResult
from tracker_agent.models.tracking import (
    DEFAULT_METRICS,
    Tracker,
    TrackerType,
    is_numeric,
    normalize_tracker_type,
)
from tracker_agent.resilience.fallback import FallbackStrategy, apply_strategies
from tracker_agent.utils.heuristic_parsers import (
    parse_food_heuristic,
    parse_workout_heuristic,
    strip_time_references,
)
from tracker_agent.utils.json_extraction import extract_json_object

logger = logging.getLogger(__name__)

# Integer literals, not digits inside decimals like 2.5
INTEGER_LITERAL = re.compile(r"(?<![\d.])\d+(?![\d.])")

SYSTEM_PROMPT = "You extract structured data from personal tracking notes. Output only valid JSON."

WORKOUT_PROMPT = """Extract the workout from this text: "{text}"

Respond with ONLY a JSON object:
{{
  "exercise": "name of the exercise",
  "count": number of repetitions or null,
  "sets": number of sets or null,
  "duration": minutes as a number or null,
  "distance": "distance with unit" or null,
  "notes": "anything else worth keeping" or null
}}

Use null for anything the text does not say. Keep every number exactly as written."""

NUTRITION_PROMPT = """Extract what was eaten or drunk from this text: "{text}"

Respond with ONLY a JSON object:
{{
  "meal": "food or drink name",
  "calories": estimated calories as a number or null,
  "protein": grams or null,
  "carbs": grams or null,
  "fat": grams or null,
  "quantity": "amount with unit" or null
}}

Be CONSERVATIVE with calorie estimates and use typical serving sizes.
Use null for anything you cannot estimate. If the text states calories, use that number."""

GENERIC_PROMPT = """Parse this text into a record for a {tracker_label} tracker: "{text}"

The tracker records these metrics: {metrics}

Respond with ONLY a JSON object using those metric names as keys.
Values are numbers, short text or true/false. Use null for anything the text does not say.
You may add a "notes" key for relevant details that fit no metric."""


@dataclass
class ExtractionContext:
    """What every extraction strategy gets to look at besides the current data"""
    text: str
    tracker_type: str


def _heuristic_for(context: ExtractionContext) -> Dict[str, Any]:
    if context.tracker_type == TrackerType.NUTRITION.value:
        return parse_food_heuristic(context.text)
    if context.tracker_type == TrackerType.WORKOUT.value:
        return parse_workout_heuristic(context.text)
    return {}


def heuristic_fallback(data: Dict[str, Any], context: ExtractionContext) -> Optional[Dict[str, Any]]:
    """Empty model result -> heuristic output verbatim (nutrition and workout only)"""
    if data:
        return None
    heuristic = _heuristic_for(context)
    return heuristic or None


def calorie_augmentation(data: Dict[str, Any], context: ExtractionContext) -> Optional[Dict[str, Any]]:
    """Nutrition record without calories -> copy only the heuristic calorie estimate"""
    if context.tracker_type != TrackerType.NUTRITION.value or not data or data.get("calories") is not None:
        return None
    calories = parse_food_heuristic(context.text).get("calories")
    if calories is None:
        return None
    return {**data, "calories": calories}


# Which heuristic number guards which field
CROSS_CHECK_FIELDS = {
    TrackerType.WORKOUT.value: "count",
    TrackerType.NUTRITION.value: "calories",
}


def cross_validation(data: Dict[str, Any], context: ExtractionContext) -> Optional[Dict[str, Any]]:
    """
    Restore a number the user typed that the model dropped or misread

    Every integer literal in the text that does not appear among the record's
    numeric values is checked against the heuristic's own number for the
    guarded field; when they agree, that field is overwritten.
    """
    field = CROSS_CHECK_FIELDS.get(context.tracker_type)
    if not field or not data:
        return None

    extracted_numbers = {value for value in data.values() if is_numeric(value)}
    literals = INTEGER_LITERAL.findall(strip_time_references(context.text))
    missing = [int(n) for n in literals if int(n) not in extracted_numbers]
    if not missing:
        return None

    heuristic_value = _heuristic_for(context).get(field)
    if not is_numeric(heuristic_value):
        return None

    for literal in missing:
        if heuristic_value == literal and data.get(field) != literal:
            logger.info(f"[EXTRACT] Cross-validation: {field} {data.get(field)!r} -> {literal}")
            return {**data, field: literal}
    return None


EXTRACTION_STRATEGIES: List[FallbackStrategy] = [
    FallbackStrategy("heuristic_fallback", heuristic_fallback, priority=1),
    FallbackStrategy("calorie_augmentation", calorie_augmentation, priority=2),
    FallbackStrategy("cross_validation", cross_validation, priority=3),
]


def build_extraction_prompt(text: str, tracker_type: str, tracker: Optional[Tracker] = None) -> str:
    """Type-specific extraction prompt"""
    if tracker_type == TrackerType.WORKOUT.value:
        return WORKOUT_PROMPT.format(text=text)
    if tracker_type == TrackerType.NUTRITION.value:
        return NUTRITION_PROMPT.format(text=text)

    metrics = tracker.metrics if tracker else DEFAULT_METRICS.get(tracker_type, ["value"])
    label = tracker.display_name if tracker else tracker_type
    return GENERIC_PROMPT.format(text=text, tracker_label=label, metrics=", ".join(metrics))


class RecordExtractionService:
    """Model extraction with heuristic fallback and self-correction"""

    def __init__(
        self,
        client: Optional[CompletionClient],
        model: str,
        strategies: Optional[List[FallbackStrategy]] = None
    ):
        self.client = client
        self.model = model
        self.strategies = strategies if strategies is not None else EXTRACTION_STRATEGIES

    async def _ask_model(self, text: str, tracker_type: str, tracker: Optional[Tracker]) -> Optional[str]:
        if self.client is None:
            return None
        try:
            return await self.client.complete(self.model, [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_extraction_prompt(text, tracker_type, tracker)},
            ])
        except Exception as e:
            logger.warning(f"[EXTRACT] Completion failed, continuing with heuristics: {e}")
            return None

    async def parse_record(
        self,
        text: str,
        tracker_type: Any,
        tracker: Optional[Tracker] = None
    ) -> ParseResult:
        """
        Extract a structured record from free text

        Args:
            text: User input
            tracker_type: Tracker type ("food" is read as nutrition)
            tracker: Target tracker, used for its declared metrics

        Returns:
            ParseResult; success is False only when no data could be extracted
        """
        tracker_type = normalize_tracker_type(tracker_type)
        raw_response = await self._ask_model(text, tracker_type, tracker)

        data = {k: v for k, v in extract_json_object(raw_response).items() if v is not None}
        applied = ["llm"] if data else []

        context = ExtractionContext(text=text, tracker_type=tracker_type)
        data, corrections = apply_strategies("record_extraction", self.strategies, data, context)
        applied.extend(corrections)

        if not data:
            logger.info(f"[EXTRACT] Nothing extracted for {tracker_type}: {text[:60]!r}")
            return ParseResult(
                success=False,
                strategies=applied,
                raw_response=raw_response,
                error="Could not extract a record from the text"
            )

        logger.info(f"[EXTRACT] {tracker_type} record via {applied}: {data}")
        return ParseResult(success=True, data=data, strategies=applied, raw_response=raw_response)
