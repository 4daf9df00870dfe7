"""
Track request handler

The single entry point a chat front-end talks to: handle(text) returns a
reply string, or None when the utterance is not a tracking request and
should be handled by general conversation instead.

Order of checks:
1. "@name ..." pins a tracker
2. undo ("scratch that") deletes the last logged record
3. correction ("actually it was 200 calories") edits the last logged record
4. create / query / log via intent classification
"""
import logging
import re
from typing import Any, Optional, Tuple

from tracker_agent.agent.completion import CompletionClient
from tracker_agent.db.tracker_store import TrackerStore
from tracker_agent.exceptions import ExtractionError, TrackerAgentError, TrackerNotFoundError
from tracker_agent.models.intent import Correction, IntentType
from tracker_agent.models.tracking import Record, Tracker, is_numeric
from tracker_agent.services.intent_resolver import IntentResolver, TrackerParser
from tracker_agent.services.query_engine import QueryEngine
from tracker_agent.services.record_extraction import RecordExtractionService
from tracker_agent.services.tracker_parser import parse_tracker_from_natural_language
from tracker_agent.utils.datetime_helpers import PERIOD_ALIASES, detect_period, parse_time_from_text
from tracker_agent.utils.json_extraction import extract_json_object

logger = logging.getLogger(__name__)

CORRECTION_CONFIDENCE = 0.7

GENERIC_FAILURE = "Something went wrong while tracking that. Please try again."
NEW_TRACKER_PREFIX = "✅ [New tracker created!]\n\n"

PIN_PATTERN = re.compile(r"^@([\w-]+)\s*(.*)$", re.DOTALL)

UNDO_PATTERNS = [
    r"\bforget (?:that|the last one|last entry|that last one)\b",
    r"\bundo(?: (?:that|last|the last one|the last entry))?\b",
    r"\bdelete (?:that|the last one|the last entry|last entry)\b",
    r"\bremove (?:that|the last one|the last entry|last entry)\b",
    r"\bcancel (?:that|the last one)\b",
    r"\bnever\s*mind\b",
    r"\bscratch that\b",
]

CORRECTION_PATTERNS = [
    r"\bactually\b",
    r"\bcorrection\b",
    r"\bmeant to say\b",
    r"\bi meant\b",
    r"\bno wait\b",
    r"\boops\b",
    r"\bmy bad\b",
    r"^(?:fix|edit|change|update):",
    r"\bit was \d+(?:\.\d+)? not \d+(?:\.\d+)?\b",
    r"\bshould (?:be|have been)\b",
    r"\b(?:wrong|mistake|incorrect)\b",
]

# "it was 8 not 10" / "8 not 10": new value first
VALUE_SWAP = re.compile(r"(\d+(?:\.\d+)?)\s+not\s+(\d+(?:\.\d+)?)")

COMPARISON_PATTERN = re.compile(r"\b(?:compare|compared|comparison|versus|vs\.?)\b")
HISTORY_PATTERN = re.compile(r"\b(?:history|recent entries|last entries)\b")
STATS_PATTERN = re.compile(r"\b(?:stats|statistics|average|avg)\b")

HISTORY_LIMIT = 10

# Period a comparison falls back to when only one side is named
PREVIOUS_PERIOD = {
    "today": "yesterday",
    "yesterday": "today",
    "this-week": "last-week",
    "last-week": "this-week",
    "this-month": "last-month",
    "last-month": "this-month",
}

CORRECTION_PROMPT = """The user is correcting a previous entry. Extract what they want to change:

"{text}"

The previous entry was: {data}

Respond with ONLY valid JSON:
{{
  "field": "field_name_to_change",
  "value": new_value,
  "confidence": 0.0-1.0
}}

Examples:
- "actually it was 200 calories" -> {{"field": "calories", "value": 200, "confidence": 0.9}}
- "the weight was 185 not 175" -> {{"field": "weight", "value": 185, "confidence": 0.95}}
- "fix: 8 reps not 10" -> {{"field": "reps", "value": 8, "confidence": 0.9}}"""


def _matches_any(patterns, text: str) -> bool:
    return any(re.search(p, text) for p in patterns)


def _to_number(value: str) -> Any:
    number = float(value)
    return int(number) if number.is_integer() else number


def _coerce_value(value: Any) -> Any:
    """Numeric strings from the model become numbers"""
    if isinstance(value, str) and re.fullmatch(r"-?\d+(?:\.\d+)?", value.strip()):
        return _to_number(value.strip())
    return value


def _describe(data: dict) -> str:
    return ", ".join(f"{k}: {v}" for k, v in data.items() if v is not None and v != "")


def find_periods(text: str) -> list:
    """Canonical period keys in order of appearance, without repeats"""
    lower = text.lower()
    found = []
    taken = []
    for phrase in sorted(PERIOD_ALIASES, key=len, reverse=True):
        for match in re.finditer(rf"\b{re.escape(phrase)}\b", lower):
            span = match.span()
            if any(span[0] < end and start < span[1] for start, end in taken):
                continue
            taken.append(span)
            found.append((span[0], PERIOD_ALIASES[phrase]))

    ordered = []
    for _, key in sorted(found):
        if key not in ordered:
            ordered.append(key)
    return ordered


def detect_comparison(text: str) -> Optional[Tuple[str, str]]:
    """
    Periods of a comparison request, in the order they are mentioned

    Example:
        >>> detect_comparison("compare this week to last week")
        ('this-week', 'last-week')
    """
    if not COMPARISON_PATTERN.search(text.lower()):
        return None
    periods = find_periods(text)
    if len(periods) >= 2:
        return periods[0], periods[1]
    if len(periods) == 1:
        return periods[0], PREVIOUS_PERIOD[periods[0]]
    return "this-week", "last-week"


class TrackRequestHandler:
    """Turn one utterance into a tracking action and a reply"""

    def __init__(
        self,
        store: TrackerStore,
        client: Optional[CompletionClient],
        model: str,
        resolver: Optional[IntentResolver] = None,
        extractor: Optional[RecordExtractionService] = None,
        query_engine: Optional[QueryEngine] = None,
        tracker_parser: TrackerParser = parse_tracker_from_natural_language
    ):
        self.store = store
        self.client = client
        self.model = model
        self.resolver = resolver or IntentResolver(client, model)
        self.extractor = extractor or RecordExtractionService(client, model)
        self.query_engine = query_engine or QueryEngine(store)
        self.tracker_parser = tracker_parser

    async def handle(self, text: Optional[str]) -> Optional[str]:
        """
        Handle one utterance

        Args:
            text: Raw user input

        Returns:
            Reply text, or None if this is not a tracking request
        """
        text = (text or "").strip()
        if not text:
            return None

        try:
            return await self._dispatch(text)
        except TrackerAgentError as e:
            # Already logged when raised
            return e.user_message
        except Exception as e:
            logger.error(f"[TRACK] Unexpected error handling {text[:60]!r}: {e}", exc_info=True)
            return GENERIC_FAILURE

    async def _dispatch(self, text: str) -> Optional[str]:
        lower = text.lower()

        pinned = PIN_PATTERN.match(text)
        if pinned:
            return await self._handle_pinned(pinned.group(1), pinned.group(2).strip())

        if _matches_any(UNDO_PATTERNS, lower):
            return self._undo()

        if _matches_any(CORRECTION_PATTERNS, lower):
            reply = await self._correct(text)
            if reply:
                return reply

        trackers = self.store.list_trackers()
        intent = await self.resolver.classify(text, trackers)
        if not self.resolver.is_tracking_request(intent):
            logger.debug(f"[TRACK] Not a tracking request ({intent.intent_type}, {intent.confidence:.2f})")
            return None

        if intent.intent_type == IntentType.CREATE:
            return await self._create(intent.description or text)

        if intent.intent_type == IntentType.QUERY:
            if not trackers:
                return "No trackers configured yet. Start logging data and I'll create one for you!"
            tracker = self.resolver.resolve_tracker(text, intent, trackers) or trackers[0]
            return self._answer_query(tracker, text)

        tracker, created = await self.resolver.find_or_create_tracker(
            text, intent, self.store, self.tracker_parser
        )
        if tracker is None:
            return "I couldn't create a tracker for this. Try: \"create a tracker for [activity]\""
        return await self._log(tracker, text, created)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def _handle_pinned(self, name: str, rest: str) -> str:
        tracker = self.store.get_tracker(name)
        if tracker is None:
            raise TrackerNotFoundError(f"No tracker named '{name}'", tracker_name=name, operation="pinned_request")
        if not rest:
            return self.query_engine.summarize_period(tracker, "today")

        intent = self.resolver.classify_by_pattern(rest)
        if intent and intent.intent_type == IntentType.QUERY:
            return self._answer_query(tracker, rest)
        return await self._log(tracker, rest, created=False)

    async def _create(self, description: str) -> str:
        definition = await self.tracker_parser(description, self.client, self.model)
        if not definition:
            return "I couldn't understand what kind of tracker you want. Try: 'create a tracker for pushups'"

        existing = self.store.get_tracker(definition["name"])
        if existing:
            return (
                f"A tracker named **@{existing.name}** already exists. "
                f"Use it with: \"@{existing.name} [your entry]\""
            )

        result = self.store.create_tracker(definition)
        if not result.success:
            return f"Failed to create tracker: {result.message}"

        tracker = result.tracker
        return (
            f"Created new tracker **@{tracker.name}** ({tracker.display_name})\n\n"
            f"Type: {tracker.type}\n"
            f"Metrics: {', '.join(tracker.metrics) or 'custom'}\n\n"
            f"Log entries with: \"@{tracker.name} [your entry]\""
        )

    def _answer_query(self, tracker: Tracker, text: str) -> str:
        comparison = detect_comparison(text)
        if comparison:
            result = self.query_engine.compare_periods(tracker.name, *comparison)
            return self.query_engine.format_comparison(result)

        lower = text.lower()
        if HISTORY_PATTERN.search(lower):
            records = self.store.get_recent_records(tracker.name, HISTORY_LIMIT)
            return f"**{tracker.display_name}** recent entries:\n{self.query_engine.format_history(records)}"
        if STATS_PATTERN.search(lower):
            stats = self.query_engine.get_stats(tracker.name, detect_period(text))
            return self.query_engine.format_stats(stats)
        return self.query_engine.summarize_period(tracker, detect_period(text))

    async def _log(self, tracker: Tracker, text: str, created: bool) -> str:
        parsed = await self.extractor.parse_record(text, tracker.type, tracker)
        if not parsed.success:
            raise ExtractionError(
                f"No record extracted for {tracker.name}: {parsed.error}",
                tracker_type=tracker.type,
                operation="log"
            )

        now = self.store.now()
        timestamp = parse_time_from_text(text, now)
        result = self.store.add_record(tracker.name, parsed.data, source="natural-language", timestamp=timestamp)
        if not result.success:
            return f"Failed to log to {tracker.display_name}: {result.message}"

        message = f"Logged to **{tracker.display_name}**:\n{_describe(result.record.data)}"
        if timestamp is not None:
            when = "%H:%M" if timestamp.date() == now.date() else "%Y-%m-%d %H:%M"
            message += f"\n(logged for {timestamp.strftime(when)})"
        if created:
            message = NEW_TRACKER_PREFIX + message
        return message

    def _undo(self) -> str:
        last = self.store.get_last_logged()
        if last is None:
            return "Nothing to undo."

        tracker, record = last
        result = self.store.delete_record(tracker.name, record.id)
        if not result.success:
            return f"Couldn't undo the last entry: {result.message}"
        return f"Deleted last entry from **{tracker.display_name}**: {_describe(record.data) or 'no data'}"

    async def _correct(self, text: str) -> Optional[str]:
        """Apply a correction to the last logged record; None if it isn't one"""
        last = self.store.get_last_logged()
        if last is None:
            return None

        tracker, record = last
        correction = self._correction_by_pattern(text, record) or await self._correction_by_model(text, record)
        if correction is None:
            return None

        previous = record.data.get(correction.field)
        result = self.store.update_record(tracker.name, record.id, {correction.field: correction.value})
        if not result.success:
            return f"Couldn't apply the correction: {result.message}"

        logger.info(f"[TRACK] Corrected {tracker.name}/{record.id}: {correction.field} {previous!r} -> {correction.value!r}")
        return (
            f"Corrected **{tracker.display_name}**: {correction.field} "
            f"{previous if previous is not None else '(unset)'} -> {correction.value}"
        )

    @staticmethod
    def _correction_by_pattern(text: str, record: Record) -> Optional[Correction]:
        """'it was 8 not 10' where exactly one field currently holds 10"""
        match = VALUE_SWAP.search(text.lower())
        if not match:
            return None
        new_value, old_value = _to_number(match.group(1)), _to_number(match.group(2))
        fields = [k for k, v in record.data.items() if is_numeric(v) and v == old_value]
        if len(fields) != 1:
            return None
        return Correction(field=fields[0], value=new_value, confidence=1.0)

    async def _correction_by_model(self, text: str, record: Record) -> Optional[Correction]:
        if self.client is None:
            return None
        try:
            content = await self.client.complete(self.model, [
                {"role": "system", "content": "You are a correction parser. Output only valid JSON."},
                {"role": "user", "content": CORRECTION_PROMPT.format(text=text, data=record.data)},
            ])
        except Exception as e:
            logger.warning(f"[TRACK] Correction parsing failed: {e}")
            return None

        parsed = extract_json_object(content)
        field = re.sub(r"\s+", "_", str(parsed.get("field") or "").strip().lower())
        if not field or "value" not in parsed:
            return None
        try:
            confidence = float(parsed.get("confidence", 0))
        except (TypeError, ValueError):
            confidence = 0.0
        if confidence < CORRECTION_CONFIDENCE:
            logger.info(f"[TRACK] Ignoring low-confidence correction ({confidence:.2f})")
            return None
        return Correction(field=field, value=_coerce_value(parsed["value"]), confidence=confidence)
