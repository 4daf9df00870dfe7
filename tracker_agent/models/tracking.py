"""Tracker and record models"""
import re
from enum import Enum
from typing import Optional, Any, Dict, List
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TrackerType(str, Enum):
    """Built-in tracker types"""
    NUTRITION = "nutrition"
    WORKOUT = "workout"
    SLEEP = "sleep"
    HABIT = "habit"
    MOOD = "mood"
    HYDRATION = "hydration"
    MEDICATION = "medication"
    CUSTOM = "custom"


# Legacy type names still found in older registries
TYPE_ALIASES: Dict[str, str] = {
    "food": TrackerType.NUTRITION.value,
    "diet": TrackerType.NUTRITION.value,
    "exercise": TrackerType.WORKOUT.value,
    "fitness": TrackerType.WORKOUT.value,
    "water": TrackerType.HYDRATION.value,
}

# Metrics used when a tracker declares none (extraction prompts, aggregation)
DEFAULT_METRICS: Dict[str, List[str]] = {
    TrackerType.NUTRITION.value: ["calories", "protein", "carbs", "fat"],
    TrackerType.WORKOUT.value: ["count", "duration", "sets", "reps"],
    TrackerType.SLEEP.value: ["hours", "quality"],
    TrackerType.HABIT.value: ["completed", "count"],
    TrackerType.MOOD.value: ["rating", "energy"],
    TrackerType.HYDRATION.value: ["amount_ml"],
    TrackerType.MEDICATION.value: ["dose"],
    TrackerType.CUSTOM.value: ["value"],
}

MAX_NAME_LENGTH = 48


def normalize_tracker_type(value: Any) -> str:
    """
    Map a free-form type string onto a TrackerType value.

    "food" and the other legacy aliases are folded into their canonical type;
    anything unrecognised becomes "custom".
    """
    if isinstance(value, TrackerType):
        return value.value
    if not value:
        return TrackerType.CUSTOM.value

    lowered = str(value).strip().lower()
    lowered = TYPE_ALIASES.get(lowered, lowered)
    if lowered in {t.value for t in TrackerType}:
        return lowered
    return TrackerType.CUSTOM.value


def slugify_tracker_name(value: str) -> str:
    """Lowercase, hyphen-separated, filesystem-safe tracker identifier"""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).strip().lower()).strip("-")
    return slug[:MAX_NAME_LENGTH].strip("-")


def is_numeric(value: Any) -> bool:
    """Numbers count for aggregation; booleans do not"""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == value  # NaN
    return False


class TrackerConfig(BaseModel):
    """Per-tracker configuration"""
    metrics: List[str] = Field(default_factory=list)  # ordered, used for aggregation and prompts
    vision_prompt: Optional[str] = None
    system_prompt: Optional[str] = None  # persona text for tracker-scoped chat
    goal: Optional[str] = None

    @field_validator("metrics", mode="before")
    @classmethod
    def clean_metrics(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        cleaned: List[str] = []
        for metric in v:
            name = re.sub(r"\s+", "_", str(metric).strip().lower())
            if name and name not in cleaned:
                cleaned.append(name)
        return cleaned


class Tracker(BaseModel):
    """A named metric collector"""
    model_config = ConfigDict(use_enum_values=True)

    name: str
    display_name: str = ""
    type: TrackerType = TrackerType.CUSTOM
    description: Optional[str] = None
    config: TrackerConfig = Field(default_factory=TrackerConfig)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, v: Any) -> str:
        slug = slugify_tracker_name(v or "")
        if not slug:
            raise ValueError("Tracker name cannot be empty")
        return slug

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        return normalize_tracker_type(v)

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, v: Any) -> Any:
        return v if v is not None else {}

    @model_validator(mode="after")
    def default_display_name(self) -> "Tracker":
        if not self.display_name or not self.display_name.strip():
            self.display_name = self.name.replace("-", " ").title()
        return self

    @property
    def metrics(self) -> List[str]:
        """Declared metrics, or the defaults for this tracker's type"""
        return self.config.metrics or DEFAULT_METRICS.get(self.type, [])


class Record(BaseModel):
    """One logged observation"""
    id: str
    timestamp: datetime
    date: str  # YYYY-MM-DD, calendar day of timestamp at write time
    data: Dict[str, Any] = Field(default_factory=dict)  # open map, not schema-enforced
    source: str = "natural-language"
    updated_at: Optional[datetime] = None

    @property
    def created_ms(self) -> int:
        """Creation instant embedded in the id (epoch millis); timestamp for foreign ids"""
        prefix = self.id.split("-", 1)[0]
        if prefix.isdigit():
            return int(prefix)
        return int(self.timestamp.timestamp() * 1000)


class StoreResult(BaseModel):
    """Outcome of a mutating store call; storage never raises across its boundary"""
    success: bool
    message: Optional[str] = None
    tracker: Optional[Tracker] = None
    record: Optional[Record] = None
