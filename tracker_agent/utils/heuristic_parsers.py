"""
Rule-based record extraction for nutrition and workout text.

Used when model extraction fails or looks wrong. Everything here is a pure
function of the input text: no I/O, no completion calls, no shared state.
"""
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from tracker_agent.config import DEFAULT_CALORIE_ESTIMATE

# Rough calories per typical serving
CALORIE_ESTIMATES: Dict[str, int] = {
    "coffee": 5,
    "espresso": 3,
    "cappuccino": 120,
    "latte": 190,
    "tea": 2,
    "green tea": 0,
    "black coffee": 5,
    "egg": 78,
    "eggs": 156,
    "toast": 80,
    "bread": 80,
    "banana": 105,
    "apple": 95,
    "orange": 62,
    "chicken": 165,
    "beef": 250,
    "fish": 136,
    "salmon": 208,
    "rice": 130,
    "pasta": 220,
    "salad": 150,
    "pizza": 285,
    "burger": 350,
    "fries": 230,
    "sandwich": 350,
    "milk": 103,
    "orange juice": 110,
    "water": 0,
    "yogurt": 150,
    "cereal": 120,
    "oatmeal": 150,
    "avocado": 160,
    "nuts": 180,
    "almonds": 164,
    "cheese": 110,
    "chocolate": 150,
    "ice cream": 270,
}

# Longest names first so "orange juice" is not read as "orange"
_FOODS_BY_LENGTH: List[Tuple[str, int]] = sorted(
    CALORIE_ESTIMATES.items(), key=lambda item: len(item[0]), reverse=True
)

MIN_FOOD_NAME_LENGTH = 3
MAX_FOOD_NAME_LENGTH = 49

_FOOD_TRIGGER = re.compile(r"(?:had|ate|drank|consumed)\s+(?:a\s+)?(?:cup of\s+)?(.+)")
_COMMAND_SUFFIX = re.compile(
    r",?\s*\b(?:log|track|record|add)\b\s*(?:my\s+)?(?:calories|cals|food|meal|it|this|that)\b.*$"
)
_LEADING_FILLER = re.compile(r"^(?:i|just now|just|another)\s+")
_LEADING_ARTICLE = re.compile(r"^(?:a|an|the|some)\s+")
_TRAILING_CLAUSE = re.compile(r"\s+(?:for|with|and)\s+.*$")
_EXPLICIT_CALORIES = re.compile(r"(\d+)\s*(?:calories|cals|kcal)\b")

_DURATION = re.compile(r"(\d+)\s*(minutes?|mins?|hours?|hrs?)\b")
_DURATION_UNITS = r"(?:minutes?|mins?|hours?|hrs?)"

# Clock times and relative offsets name when something happened, not how much
_TIME_REFERENCE = re.compile(
    r"(?:\bat\s+)?\b\d{1,2}:\d{2}\s*(?:am|pm)?\b"
    r"|(?:\bat\s+)?\b\d{1,2}\s*(?:am|pm)\b"
    r"|\b\d+\s*(?:minutes?|mins?|hours?|hrs?|days?)\s+ago\b",
    re.IGNORECASE
)


def strip_time_references(text: str) -> str:
    """Drop "at 7:30am", "8pm" and "2 hours ago" so their digits are not read as amounts"""
    return re.sub(r"\s{2,}", " ", _TIME_REFERENCE.sub(" ", text))


def _clean_food_name(lower: str) -> str:
    match = _FOOD_TRIGGER.search(lower)
    name = match.group(1) if match else lower

    name = _COMMAND_SUFFIX.sub("", name).strip()
    previous = None
    while previous != name:
        previous = name
        name = _LEADING_FILLER.sub("", name).strip()
    name = _LEADING_ARTICLE.sub("", name).strip()
    name = _TRAILING_CLAUSE.sub("", name).strip()
    return name.strip(" ,.!?")


def estimate_calories(text: str) -> Optional[int]:
    """Calories from an explicit number or the lookup table, None if neither"""
    lower = text.lower()

    explicit = _EXPLICIT_CALORIES.search(lower)
    if explicit:
        return int(explicit.group(1))

    for food, calories in _FOODS_BY_LENGTH:
        if re.search(rf"\b{re.escape(food)}", lower):
            return calories
    return None


def parse_food_heuristic(text: str) -> Dict[str, Any]:
    """
    Extract a nutrition record from free text

    Calories come from, in order: an explicit "<N> calories" in the text,
    the CALORIE_ESTIMATES table, or a flat default when the cleaned food
    name has a plausible length.

    Example:
        >>> parse_food_heuristic("I had a cappuccino, log it")
        {'meal': 'Cappuccino', 'calories': 120}
    """
    lower = text.lower().strip()
    food_name = _clean_food_name(lower)

    calories = estimate_calories(lower)
    if calories is None and MIN_FOOD_NAME_LENGTH <= len(food_name) <= MAX_FOOD_NAME_LENGTH:
        calories = DEFAULT_CALORIE_ESTIMATE

    data: Dict[str, Any] = {}
    if food_name:
        data["meal"] = food_name[0].upper() + food_name[1:]
    if calories is not None:
        data["calories"] = calories
    return data


# ----------------------------------------------------------------------
# Workouts
# ----------------------------------------------------------------------

def _pushups(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(r"(\d+)\s*(?:pushups|push-ups|push ups)\b", lower)
    if match:
        return {"exercise": "pushups", "count": int(match.group(1))}
    return None


def _more_pushups(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(r"(\d+)\s+more\s+(?:pushups|push-ups|push ups)\b", lower)
    if match:
        return {"exercise": "pushups", "count": int(match.group(1))}
    return None


def _reps(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(r"(\d+)\s*(?:reps|repetitions)\b", lower)
    if match:
        return {"exercise": "reps", "count": int(match.group(1))}
    return None


def _run_distance(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(r"(\d+(?:\.\d+)?)\s*(km|miles?|meters?)\s*(?:run|running|jog|jogging)\b", lower)
    if match:
        return {"exercise": "running", "distance": f"{match.group(1)} {match.group(2)}"}
    return None


def _did_pushups(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(r"\b(?:i\s+)?(?:did|completed)\s+(\d+)\s*(?:pushups|push-ups|push ups)\b", lower)
    if match:
        return {"exercise": "pushups", "count": int(match.group(1))}
    return None


def _standalone_count(lower: str) -> Optional[Dict[str, Any]]:
    match = re.search(rf"(?<![\d.])(\d{{1,4}})(?![\d.])(?!\s*{_DURATION_UNITS}\b)", lower)
    if match:
        return {"count": int(match.group(1))}
    return None


# Tried in order until one matches
WORKOUT_PATTERNS: List[Callable[[str], Optional[Dict[str, Any]]]] = [
    _pushups,
    _more_pushups,
    _reps,
    _run_distance,
    _did_pushups,
    _standalone_count,
]


def parse_duration_minutes(text: str) -> Optional[int]:
    """Minutes from the first "<N> minutes/hours" phrase"""
    match = _DURATION.search(strip_time_references(text.lower()))
    if not match:
        return None
    value = int(match.group(1))
    return value * 60 if match.group(2).startswith("h") else value


def parse_workout_heuristic(text: str) -> Dict[str, Any]:
    """
    Extract a workout record from free text

    Example:
        >>> parse_workout_heuristic("did 50 pushups")
        {'exercise': 'pushups', 'count': 50}
        >>> parse_workout_heuristic("finished a 30 minute swim")
        {'exercise': '30 minute swim', 'duration': 30}
    """
    lower = strip_time_references(text.lower()).strip()
    data: Dict[str, Any] = {}

    for pattern in WORKOUT_PATTERNS:
        found = pattern(lower)
        if found:
            data.update(found)
            break

    if "exercise" not in data:
        match = re.search(r"(?:did|completed|finished|started)\s+(?:a\s+)?(?:workout of\s+)?(.+)", lower)
        data["exercise"] = match.group(1).strip() if match else "Workout"

    duration = parse_duration_minutes(lower)
    if duration is not None:
        data["duration"] = duration

    return data


# ----------------------------------------------------------------------
# Tracker type detection
# ----------------------------------------------------------------------

TYPE_KEYWORDS: List[Tuple[str, str]] = [
    ("hydration", r"\b(water|hydrat\w*|glass(es)? of)\b"),
    ("nutrition", r"\b(calories?|cals|kcal|food|meals?|ate|eaten|eat|breakfast|lunch|dinner|snack|nutrition|diet)\b"),
    ("workout", r"\b(workout|exercise|run|running|jog\w*|gym|push-?ups?|pull-?ups?|squats?|reps|lift\w*|swim\w*|bike|cycling)\b"),
    ("sleep", r"\b(sleep|slept|bed|woke|nap)\b"),
    ("medication", r"\b(pills?|medication|meds|vitamins?|supplements?|dose)\b"),
    ("mood", r"\b(mood|feel(ing)?|felt|anxious|happy|sad|stress\w*)\b"),
    ("habit", r"\b(habit|daily|routine|meditat\w*|streak)\b"),
]


def detect_tracker_type(text: str) -> Optional[str]:
    """Guess a tracker type from keywords, None if nothing matches"""
    lower = text.lower()
    for tracker_type, pattern in TYPE_KEYWORDS:
        if re.search(pattern, lower):
            return tracker_type

    # "I had a latte" names a food without any nutrition keyword
    if any(re.search(rf"\b{re.escape(food)}", lower) for food, _ in _FOODS_BY_LENGTH):
        return "nutrition"
    return None
