"""Intent classification and extraction result models"""
from enum import Enum
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field, field_validator


class IntentType(str, Enum):
    CREATE = "create"
    LOG = "log"
    QUERY = "query"
    NONE = "none"


class TrackingIntent(BaseModel):
    """Result of classifying one utterance"""
    intent_type: IntentType = IntentType.NONE
    tracker_type: str = "unknown"  # a TrackerType value or "unknown"
    tracker_needed: Optional[str] = None  # existing tracker the model thinks is meant
    description: Optional[str] = None
    confidence: float = 0.0
    method: str = "pattern"  # pattern, llm, cache, error, unavailable

    @field_validator("intent_type", mode="before")
    @classmethod
    def coerce_intent(cls, v: Any) -> str:
        if isinstance(v, IntentType):
            return v.value
        value = str(v or "none").strip().lower()
        return value if value in {i.value for i in IntentType} else IntentType.NONE.value

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, value))

    @field_validator("tracker_needed", "description", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        if not text or text.lower() in ("null", "none"):
            return None
        return text


class ParseResult(BaseModel):
    """Structured record extracted from free text"""
    success: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    strategies: List[str] = Field(default_factory=list)  # llm, heuristic_fallback, calorie_augmentation, ...
    raw_response: Optional[str] = None
    error: Optional[str] = None


class Correction(BaseModel):
    """A single-field fix to the last logged record"""
    field: str
    value: Any
    confidence: float = 0.0
