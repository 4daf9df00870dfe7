"""Period statistics models"""
from typing import Optional, Dict, List, Union
from pydantic import BaseModel, Field

from tracker_agent.models.tracking import Record

# Reported instead of a percentage when the baseline total is zero
PERCENT_NOT_AVAILABLE = "N/A"


class MetricAggregation(BaseModel):
    """Aggregate of one metric over the numeric values in a period"""
    sum: float
    avg: float
    min: float
    max: float
    count: int


class PeriodStats(BaseModel):
    """Records and per-metric aggregates for one tracker and period"""
    tracker_name: str
    period: str
    start_date: str
    end_date: str
    count: int = 0
    records: List[Record] = Field(default_factory=list)
    aggregations: Dict[str, MetricAggregation] = Field(default_factory=dict)


class MetricChange(BaseModel):
    """Change of a metric total between two periods"""
    total_a: float
    total_b: float
    difference: float
    percent_change: Union[float, str]  # float, or PERCENT_NOT_AVAILABLE


class PeriodComparison(BaseModel):
    tracker_name: str
    period_a: str
    period_b: str
    stats_a: PeriodStats
    stats_b: PeriodStats
    changes: Dict[str, MetricChange] = Field(default_factory=dict)
    message: Optional[str] = None
