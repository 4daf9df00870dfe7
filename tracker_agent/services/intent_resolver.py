"""
Intent classification and tracker resolution

classify() decides whether an utterance creates a tracker, logs to one,
queries one, or is not a tracking request at all:

- Tier 1: ordered regular expressions for unambiguous create phrasing, then
  unambiguous query phrasing (create wins over query)
- Tier 2: a classification prompt to the completion model, biased by a
  "looks like a statement of something done" hint and the tracker list;
  results are cached per normalised input for INTENT_CACHE_TTL seconds

resolve_tracker() then picks the tracker a log request belongs to through an
ordered chain of matching strategies.
"""
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from tracker_agent.agent.completion import CompletionClient
from tracker_agent.config import CONFIDENCE_THRESHOLD, INTENT_CACHE_TTL
from tracker_agent.db.tracker_store import TrackerStore
from tracker_agent.models.intent import IntentType, TrackingIntent
from tracker_agent.models.tracking import (
    DEFAULT_METRICS,
    Tracker,
    TrackerType,
    normalize_tracker_type,
    slugify_tracker_name,
)
from tracker_agent.resilience.fallback import FallbackStrategy, first_match
from tracker_agent.services.tracker_parser import parse_tracker_from_natural_language
from tracker_agent.utils.cache import TTLCache
from tracker_agent.utils.heuristic_parsers import detect_tracker_type
from tracker_agent.utils.json_extraction import extract_json_object

logger = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 0.9

# Type hints that don't name a concrete tracker type
UNTYPED = ("unknown", TrackerType.CUSTOM.value)

CREATE_PATTERNS = [
    r"\b(?:create|make|add|build|set\s*up)\s+(?:a\s+|an\s+|my\s+)?(?:new\s+)?(?:[\w-]+\s+){0,2}tracker\b",
    r"\bnew\s+(?:[\w-]+\s+)?tracker\b",
    r"\bset\s*up\s+tracking\s+(?:for|of)\b",
    r"\bstart\s+tracking\b",
    r"\bi\s+(?:want|would\s+like|'d\s+like)\s+to\s+(?:start\s+)?track(?:ing)?\b",
    r"\bcan\s+you\s+(?:start\s+)?track(?:ing)?\b",
]

QUERY_PATTERNS = [
    r"^how\s+(?:many|much)\b",
    r"\bwhat\s+(?:did|have)\s+i\s+(?:eat|eaten|ate|drink|drank|drunk|log|logged|do|done|track|tracked)\b",
    r"^show\s+(?:me\s+)?",
    r"^(?:display|list)\s+(?:my\s+)?",
    r"^(?:what(?:'s|\s+is|\s+was|\s+are)\s+)?(?:my\s+)?totals?\b",
    r"^compare\b",
    r"\b(?:stats|statistics|history|summary)\b",
]

# "Something was done": biases the model towards a log intent
STATEMENT_PATTERNS = [
    r"^(?:i\s+)?(?:just\s+)?(?:had|ate|drank|did|completed|finished|ran|walked|swam|slept|took|drunk)\b",
    r"^(?:log|track|record|add|note)\s+",
    r"\b\d+(?:\.\d+)?\s*(?:cal|cals|calories|kcal|ml|l|oz|km|miles?|pushups|push-ups|reps?|squats?|minutes?|mins?|hours?|hrs?)\b",
]

# Keyword -> phrasings that mean it; matched against tracker names
WORKOUT_SYNONYMS: Dict[str, List[str]] = {
    "pushup": ["pushup", "push-up", "push up"],
    "run": ["run", "ran", "jog", "jogging"],
    "walk": ["walk", "walked", "steps"],
    "bike": ["bike", "biking", "cycling", "cycled", "ride"],
    "swim": ["swim", "swam", "laps"],
    "squat": ["squat"],
    "lift": ["lift", "weights", "deadlift", "bench press"],
}

RESOLUTION_STOP_WORDS = {"tracker", "create", "add", "new", "log", "the", "for", "and", "my", "track"}

INTENT_PROMPT = """Analyze this user input and determine the tracking intent:

User input: "{text}"

Looks like a statement of something the user did: {statement}

Existing trackers:
{trackers}

Respond with ONLY valid JSON:
{{
  "intentType": "create|log|query|none",
  "trackerType": "nutrition|workout|sleep|habit|mood|hydration|medication|custom|unknown",
  "trackerNeeded": "existing_tracker_name or null if needs new tracker",
  "description": "brief description of what to track (for new trackers)",
  "confidence": 0.0-1.0
}}

Intent types:
- "create": User explicitly wants to CREATE/ADD/MAKE a new tracker
- "log": User wants to record data (e.g. "I had coffee", "did a 5k run", "log 50 pushups", "I ate pizza")
- "query": User wants to view data (e.g. "what did I eat", "how many calories", "show my workouts")
- "none": Not tracking-related

If the user talks about MAKING a tracker, that is "create", NOT "log"."""

TrackerParser = Callable[[str, Optional[CompletionClient], str], Awaitable[Optional[dict]]]


def _matches_any(patterns: List[str], text: str) -> bool:
    return any(re.search(p, text) for p in patterns)


def looks_like_statement(text: str) -> bool:
    return _matches_any(STATEMENT_PATTERNS, text.lower().strip())


def _display_key(tracker: Tracker) -> str:
    return re.sub(r"\s*tracker$", "", tracker.display_name.lower().strip()).strip()


# ----------------------------------------------------------------------
# Tracker resolution strategies, tried in order
# ----------------------------------------------------------------------

def match_by_name(lower: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
    """Tracker name or display name appears in the input"""
    for tracker in trackers:
        candidates = {tracker.name, tracker.name.replace("-", " "), _display_key(tracker)}
        if any(c and c in lower for c in candidates):
            return tracker
    return None


def match_by_type(lower: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
    """Classified tracker type equals a tracker's type (food counts as nutrition)"""
    if intent.tracker_type in UNTYPED:
        return None
    wanted = normalize_tracker_type(intent.tracker_type)
    return next((t for t in trackers if normalize_tracker_type(t.type) == wanted), None)


def match_by_workout_synonym(lower: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
    """'went for a jog' finds a tracker named after running"""
    for keyword, phrasings in WORKOUT_SYNONYMS.items():
        if not any(re.search(rf"\b{re.escape(p)}", lower) for p in phrasings):
            continue
        for tracker in trackers:
            if keyword in tracker.name or keyword in tracker.display_name.lower():
                return tracker
    return None


def match_by_description(lower: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
    """Custom requests: meaningful description words inside a tracker's name or description"""
    if intent.tracker_type not in UNTYPED:
        return None
    source = (intent.description or lower).lower()
    tokens = [
        w for w in re.findall(r"[a-z0-9]+", source)
        if len(w) > 2 and w not in RESOLUTION_STOP_WORDS
    ]
    for tracker in trackers:
        haystack = " ".join([tracker.name, tracker.display_name.lower(), (tracker.description or "").lower()])
        if any(token in haystack for token in tokens):
            return tracker
    return None


def match_only_tracker(lower: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
    """With exactly one tracker there is nothing to choose between"""
    return trackers[0] if len(trackers) == 1 else None


RESOLUTION_STRATEGIES: List[FallbackStrategy] = [
    FallbackStrategy("name", match_by_name, priority=1),
    FallbackStrategy("type", match_by_type, priority=2),
    FallbackStrategy("workout_synonym", match_by_workout_synonym, priority=3),
    FallbackStrategy("description", match_by_description, priority=4),
    FallbackStrategy("only_tracker", match_only_tracker, priority=5),
]


class IntentResolver:
    """Classify utterances and map them onto trackers"""

    def __init__(
        self,
        client: Optional[CompletionClient],
        model: str,
        cache_ttl: float = INTENT_CACHE_TTL,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        cache: Optional[TTLCache] = None
    ):
        self.client = client
        self.model = model
        self.confidence_threshold = confidence_threshold
        self.cache = cache if cache is not None else TTLCache(ttl=cache_ttl)

    @staticmethod
    def _cache_key(text: str) -> str:
        return re.sub(r"\s+", " ", text.lower().strip())

    def classify_by_pattern(self, text: str) -> Optional[TrackingIntent]:
        """Tier 1: create patterns, then query patterns"""
        lower = text.lower().strip()
        tracker_type = detect_tracker_type(lower) or "unknown"

        if _matches_any(CREATE_PATTERNS, lower):
            return TrackingIntent(
                intent_type=IntentType.CREATE,
                tracker_type=tracker_type,
                description=text.strip(),
                confidence=PATTERN_CONFIDENCE,
                method="pattern"
            )
        if _matches_any(QUERY_PATTERNS, lower):
            return TrackingIntent(
                intent_type=IntentType.QUERY,
                tracker_type=tracker_type,
                description=text.strip(),
                confidence=PATTERN_CONFIDENCE,
                method="pattern"
            )
        return None

    async def classify(self, text: str, trackers: List[Tracker]) -> TrackingIntent:
        """
        Classify an utterance

        Args:
            text: User input
            trackers: Existing trackers, shown to the model

        Returns:
            TrackingIntent; intent "none" with confidence 0.0 when the model
            is unavailable or answers with garbage
        """
        intent = self.classify_by_pattern(text)
        if intent:
            logger.info(f"[INTENT] Pattern match: {intent.intent_type} ({intent.tracker_type})")
            return intent

        key = self._cache_key(text)
        self.cache.sweep()
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[INTENT] Cache hit for {key!r}")
            return cached.model_copy(update={"method": "cache"})

        intent = await self._classify_with_model(text, trackers)
        if intent.method == "llm":
            self.cache.set(key, intent)
        return intent

    async def _classify_with_model(self, text: str, trackers: List[Tracker]) -> TrackingIntent:
        if self.client is None:
            return TrackingIntent(method="unavailable")

        trackers_list = "\n".join(
            f"- {t.display_name} (type: {t.type})" for t in trackers
        ) or "No trackers exist yet"
        prompt = INTENT_PROMPT.format(
            text=text,
            statement="yes" if looks_like_statement(text) else "no",
            trackers=trackers_list
        )

        try:
            content = await self.client.complete(self.model, [
                {"role": "system", "content": "You are an intent classifier. Output only valid JSON."},
                {"role": "user", "content": prompt},
            ])
        except Exception as e:
            logger.warning(f"[INTENT] Classification failed: {e}")
            return TrackingIntent(method="error")

        parsed = extract_json_object(content)
        if not parsed:
            logger.warning(f"[INTENT] Unparsable classification: {content[:120]!r}")
            return TrackingIntent(method="error")

        tracker_type = str(parsed.get("trackerType") or "unknown").strip().lower()
        if tracker_type != "unknown":
            tracker_type = normalize_tracker_type(tracker_type)

        intent = TrackingIntent(
            intent_type=parsed.get("intentType"),
            tracker_type=tracker_type,
            tracker_needed=parsed.get("trackerNeeded"),
            description=parsed.get("description"),
            confidence=parsed.get("confidence", 0.0),
            method="llm"
        )
        logger.info(
            f"[INTENT] Model: {intent.intent_type} ({intent.tracker_type}) "
            f"confidence={intent.confidence:.2f}"
        )
        return intent

    def is_tracking_request(self, intent: TrackingIntent) -> bool:
        """False for 'none' and anything below the confidence threshold"""
        return intent.intent_type != IntentType.NONE and intent.confidence >= self.confidence_threshold

    def resolve_tracker(self, text: str, intent: TrackingIntent, trackers: List[Tracker]) -> Optional[Tracker]:
        """First tracker any resolution strategy agrees on, or None"""
        if not trackers:
            return None

        tracker, strategy = first_match("tracker_resolution", RESOLUTION_STRATEGIES, text.lower(), intent, trackers)
        if tracker:
            logger.info(f"[INTENT] Resolved tracker '{tracker.name}' by {strategy}")
        return tracker

    async def find_or_create_tracker(
        self,
        text: str,
        intent: TrackingIntent,
        store: TrackerStore,
        tracker_parser: TrackerParser = parse_tracker_from_natural_language
    ) -> Tuple[Optional[Tracker], bool]:
        """
        Resolve the target tracker, creating one when nothing matches

        A synthesized definition whose name already exists (case-insensitive)
        reuses that tracker instead of failing.

        Returns:
            Tuple of (tracker or None, whether it was created now)
        """
        trackers = store.list_trackers()
        tracker = self.resolve_tracker(text, intent, trackers)
        if tracker:
            return tracker, False

        if intent.description:
            description = intent.description
        elif intent.tracker_type not in UNTYPED:
            description = f"{intent.tracker_type} tracker"
        else:
            description = text

        definition = await tracker_parser(description, self.client, self.model)
        if not definition:
            logger.warning(f"[INTENT] No tracker definition for {description!r}")
            return None, False

        # The classifier's concrete type beats a generic synthesized one
        if intent.tracker_type not in UNTYPED and normalize_tracker_type(definition.get("type")) == TrackerType.CUSTOM.value:
            definition = {
                **definition,
                "type": intent.tracker_type,
                "config": {**(definition.get("config") or {}), "metrics": DEFAULT_METRICS.get(normalize_tracker_type(intent.tracker_type), [])},
            }

        name = slugify_tracker_name(definition.get("name") or "")
        existing = next((t for t in trackers if t.name.lower() == name.lower()), None)
        if existing:
            logger.info(f"[INTENT] Tracker '{existing.name}' already exists, reusing it")
            return existing, False

        result = store.create_tracker(definition)
        if not result.success:
            logger.error(f"[INTENT] Failed to create tracker '{name}': {result.message}")
            return None, False

        logger.info(f"[INTENT] Auto-created tracker '{result.tracker.name}'")
        return result.tracker, True
