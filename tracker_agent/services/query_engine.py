"""
Period queries over tracker records

Statistics are computed over records whose "date" falls inside the resolved
period. Only numeric, non-boolean values take part in aggregation; a metric
without any numeric observation is left out of the aggregation map rather
than reported as zero.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from tracker_agent.db.tracker_store import TrackerStore
from tracker_agent.models.analysis import (
    PERCENT_NOT_AVAILABLE,
    MetricAggregation,
    MetricChange,
    PeriodComparison,
    PeriodStats,
)
from tracker_agent.models.tracking import Record, Tracker, TrackerType, is_numeric
from tracker_agent.utils.datetime_helpers import PERIOD_ALIASES, resolve_period

logger = logging.getLogger(__name__)

PERIOD_LABELS = {
    "today": "today",
    "yesterday": "yesterday",
    "this-week": "this week",
    "last-week": "last week",
    "this-month": "this month",
    "last-month": "last month",
}

# Fields that name an entry when listing records
LABEL_FIELDS = ("name", "meal", "food", "exercise", "entry", "habit")


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def _format_value(value: Any) -> str:
    if is_numeric(value):
        return _format_number(value)
    return str(value)


def _format_data(data: Dict[str, Any]) -> str:
    return ", ".join(f"{k}: {_format_value(v)}" for k, v in data.items() if v not in (None, ""))


def aggregate_metric(records: List[Record], metric: str) -> Optional[MetricAggregation]:
    """sum/avg/min/max/count over the numeric values of one metric"""
    values = [r.data[metric] for r in records if is_numeric(r.data.get(metric))]
    if not values:
        return None
    total = float(sum(values))
    return MetricAggregation(
        sum=total,
        avg=total / len(values),
        min=float(min(values)),
        max=float(max(values)),
        count=len(values)
    )


class QueryEngine:
    """Statistics, comparisons and text summaries for one tracker at a time"""

    def __init__(self, store: TrackerStore):
        self.store = store

    def today(self) -> date:
        return self.store.now().date()

    def period_label(self, period: str) -> str:
        key = PERIOD_ALIASES.get((period or "").strip().lower())
        if key:
            return PERIOD_LABELS[key]
        start, end = resolve_period(period, self.today())
        return start if start == end else f"{start} to {end}"

    def get_stats(self, tracker_name: str, period: str = "today") -> PeriodStats:
        """
        Records and per-metric aggregates for a period

        Args:
            tracker_name: Tracker to query
            period: Period keyword or explicit YYYY-MM-DD[..YYYY-MM-DD] range

        Returns:
            PeriodStats; an unknown tracker yields empty stats
        """
        start, end = resolve_period(period, self.today())
        tracker = self.store.get_tracker(tracker_name)
        stats = PeriodStats(tracker_name=tracker_name, period=period, start_date=start, end_date=end)
        if tracker is None:
            logger.info(f"[QUERY] Unknown tracker '{tracker_name}', returning empty stats")
            return stats

        records = self.store.get_records_by_date_range(tracker.name, start, end)
        stats.count = len(records)
        stats.records = records
        for metric in tracker.metrics:
            aggregation = aggregate_metric(records, metric)
            if aggregation:
                stats.aggregations[metric] = aggregation

        logger.debug(f"[QUERY] {tracker.name} {period} ({start}..{end}): {stats.count} records")
        return stats

    def compare_periods(self, tracker_name: str, period_a: str, period_b: str) -> PeriodComparison:
        """
        Compare metric totals between two periods

        For every metric aggregated in both periods the change is reported
        relative to period A: difference = total_b - total_a and
        percent_change = difference / total_a * 100, or "N/A" when total_a is 0.
        """
        stats_a = self.get_stats(tracker_name, period_a)
        stats_b = self.get_stats(tracker_name, period_b)

        changes: Dict[str, MetricChange] = {}
        for metric, agg_a in stats_a.aggregations.items():
            agg_b = stats_b.aggregations.get(metric)
            if agg_b is None:
                continue
            difference = agg_b.sum - agg_a.sum
            percent = PERCENT_NOT_AVAILABLE if agg_a.sum == 0 else difference / agg_a.sum * 100
            changes[metric] = MetricChange(
                total_a=agg_a.sum,
                total_b=agg_b.sum,
                difference=difference,
                percent_change=percent
            )

        message = None
        if not changes:
            message = "No metrics recorded in both periods"
        return PeriodComparison(
            tracker_name=tracker_name,
            period_a=period_a,
            period_b=period_b,
            stats_a=stats_a,
            stats_b=stats_b,
            changes=changes,
            message=message
        )

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def _display_name(self, tracker_name: str) -> str:
        tracker = self.store.get_tracker(tracker_name)
        return tracker.display_name if tracker else tracker_name

    def format_stats(self, stats: PeriodStats) -> str:
        lines = [
            f"**{self._display_name(stats.tracker_name)}** {self.period_label(stats.period)} "
            f"({stats.start_date} to {stats.end_date})",
            f"Entries: {stats.count}",
        ]
        for metric, agg in stats.aggregations.items():
            lines.append(
                f"  {metric}: total {_format_number(agg.sum)}, avg {_format_number(agg.avg)}, "
                f"min {_format_number(agg.min)}, max {_format_number(agg.max)} ({agg.count} values)"
            )
        return "\n".join(lines)

    def format_history(self, records: List[Record]) -> str:
        if not records:
            return "No entries yet."
        return "\n".join(
            f"- {r.timestamp.strftime('%Y-%m-%d %H:%M')} [{r.id}] {_format_data(r.data) or 'No data'}"
            for r in records
        )

    def format_comparison(self, comparison: PeriodComparison) -> str:
        label_a = self.period_label(comparison.period_a)
        label_b = self.period_label(comparison.period_b)
        lines = [
            f"**{self._display_name(comparison.tracker_name)}**: {label_a} vs {label_b}",
            f"Entries: {comparison.stats_a.count} -> {comparison.stats_b.count}",
        ]
        if comparison.message:
            lines.append(comparison.message)
        for metric, change in comparison.changes.items():
            if isinstance(change.percent_change, str):
                percent = change.percent_change
            else:
                percent = f"{change.percent_change:+.1f}%"
            sign = "+" if change.difference >= 0 else ""
            lines.append(
                f"  {metric}: {_format_number(change.total_a)} -> {_format_number(change.total_b)} "
                f"({sign}{_format_number(change.difference)}, {percent})"
            )
        return "\n".join(lines)

    def summarize_period(self, tracker: Tracker, period: str = "today") -> str:
        """Per-entry listing with totals, shaped by the tracker type"""
        stats = self.get_stats(tracker.name, period)
        label = self.period_label(period)

        if stats.count == 0:
            return f"No entries logged {label} for {tracker.display_name}."

        header = f"**{tracker.display_name}** {label}:\n\n"
        records = sorted(stats.records, key=lambda r: r.timestamp)

        if tracker.type == TrackerType.NUTRITION.value:
            entries = []
            total_calories = 0.0
            for r in records:
                meal = next((r.data[f] for f in LABEL_FIELDS if r.data.get(f)), "Entry")
                calories = r.data.get("calories")
                if is_numeric(calories):
                    total_calories += calories
                    entries.append(f"- {meal} ({_format_number(calories)} cal)")
                else:
                    entries.append(f"- {meal}")
            return (
                header + "\n".join(entries)
                + f"\n\nTotal: {stats.count} entries, {total_calories:.0f} calories"
            )

        if tracker.type == TrackerType.WORKOUT.value:
            entries = []
            for r in records:
                parts = [str(r.data.get("exercise") or "Workout")]
                if is_numeric(r.data.get("count")):
                    parts.append(f"x{_format_number(r.data['count'])}")
                if is_numeric(r.data.get("duration")):
                    parts.append(f"{_format_number(r.data['duration'])} min")
                if r.data.get("distance"):
                    parts.append(str(r.data["distance"]))
                entries.append("- " + " ".join(parts))
            totals = ", ".join(
                f"{metric} {_format_number(agg.sum)}" for metric, agg in stats.aggregations.items()
            )
            footer = f"\n\nTotal: {stats.count} entries" + (f", {totals}" if totals else "")
            return header + "\n".join(entries) + footer

        entries = [
            f"- Entry {i}: {_format_data(r.data) or 'No data'}"
            for i, r in enumerate(records, start=1)
        ]
        totals = ", ".join(
            f"{metric} {_format_number(agg.sum)}" for metric, agg in stats.aggregations.items()
        )
        footer = f"\n\nTotal: {stats.count} entries" + (f", {totals}" if totals else "")
        return header + "\n".join(entries) + footer
