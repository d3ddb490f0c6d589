"""Core domain models and the persisted JSON record format."""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Union

from .errors import RecordDecodeError

METRIC_NAMES = ("fcp", "lcp", "cls", "inp", "ttfb")
RATINGS = ("good", "needs-improvement", "poor")
DEFAULT_STRATEGIES = ("SSR", "SSG", "ISR", "CACHE")
DEFAULT_PROJECT_ID = "default"
GRANULARITIES = ("hour", "day", "week", "month")

# (good, needs-improvement) upper bounds, inclusive.
METRIC_THRESHOLDS: Dict[str, tuple[float, float]] = {
    "fcp": (1800, 3000),
    "lcp": (2500, 4000),
    "cls": (0.1, 0.25),
    "inp": (200, 500),
    "ttfb": (800, 1800),
}

Timestamp = Union[datetime, date, int]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def rate_metric(name: str, value: float) -> str:
    """Rate a metric value against the Core Web Vitals thresholds."""
    good, needs_improvement = METRIC_THRESHOLDS[name]
    if value <= good:
        return "good"
    if value <= needs_improvement:
        return "needs-improvement"
    return "poor"


@dataclass(frozen=True)
class MetricSample:
    """One observation of a named performance metric."""

    value: float
    rating: str
    delta: float = 0.0

    @classmethod
    def from_value(cls, name: str, value: float, delta: float = 0.0) -> "MetricSample":
        return cls(value=value, rating=rate_metric(name, value), delta=delta)


@dataclass(frozen=True)
class CoreMetrics:
    """The five Core Web Vitals captured in a single snapshot."""

    fcp: MetricSample
    lcp: MetricSample
    cls: MetricSample
    inp: MetricSample
    ttfb: MetricSample
    timestamp: str

    def sample(self, name: str) -> MetricSample:
        if name not in METRIC_NAMES:
            raise KeyError(name)
        return getattr(self, name)


@dataclass(frozen=True)
class HistoricalDataPoint:
    """A persisted measurement snapshot.

    ``timestamp`` is the true measurement time in epoch milliseconds. It may be
    ``None`` on a point that has not been saved yet; the store fills it in.
    """

    strategy: str
    metrics: CoreMetrics
    project_id: str = DEFAULT_PROJECT_ID
    timestamp: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TimeRangeQuery:
    """Inclusive time window, optionally narrowed to one strategy.

    A bare ``date`` as ``end_date`` covers that whole UTC day.
    """

    start_date: Timestamp
    end_date: Timestamp
    strategy: Optional[str] = None
    project_id: str = DEFAULT_PROJECT_ID


@dataclass(frozen=True)
class MetricStats:
    avg: float
    min: float
    max: float


@dataclass(frozen=True)
class AggregatedBucket:
    """Statistics for every point whose timestamp falls in one time bucket."""

    timestamp: int
    count: int
    metrics: Dict[str, MetricStats] = field(default_factory=dict)


@dataclass(frozen=True)
class RegressionFinding:
    """A metric whose current average is worse than its baseline."""

    metric: str
    baseline: float
    current: float
    change: float


def to_epoch_ms(value: Timestamp, end_of_day: bool = False) -> int:
    """
    Convert a datetime, date or epoch-ms int to epoch milliseconds.

    Naive datetimes are read as UTC. A bare date stands for its UTC midnight,
    or for its last millisecond when ``end_of_day`` is set.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - _EPOCH) // timedelta(milliseconds=1)
    if isinstance(value, date):
        midnight = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if end_of_day:
            midnight += timedelta(days=1, milliseconds=-1)
        return (midnight - _EPOCH) // timedelta(milliseconds=1)
    return int(value)


def from_epoch_ms(timestamp_ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=int(timestamp_ms))


def point_to_record(point: HistoricalDataPoint) -> Dict[str, Any]:
    """Map a data point to its persisted JSON-compatible shape."""
    metrics: Dict[str, Any] = {}
    for name in METRIC_NAMES:
        sample = point.metrics.sample(name)
        metrics[name] = {"value": sample.value, "rating": sample.rating, "delta": sample.delta}
    metrics["timestamp"] = point.metrics.timestamp

    record: Dict[str, Any] = {
        "timestamp": point.timestamp,
        "strategy": point.strategy,
        "projectId": point.project_id,
        "metrics": metrics,
    }
    if point.metadata is not None:
        record["metadata"] = point.metadata
    return record


def point_from_record(record: Mapping[str, Any]) -> HistoricalDataPoint:
    """Build a data point from its persisted shape.

    Raises:
        KeyError, TypeError, ValueError: If the record is missing fields or
        holds values of the wrong type.
    """
    raw_metrics = record["metrics"]
    samples = {}
    for name in METRIC_NAMES:
        raw_sample = raw_metrics[name]
        value = float(raw_sample["value"])
        samples[name] = MetricSample(
            value=value,
            rating=raw_sample.get("rating") or rate_metric(name, value),
            delta=float(raw_sample.get("delta") or 0.0),
        )
    metrics = CoreMetrics(timestamp=str(raw_metrics.get("timestamp", "")), **samples)

    return HistoricalDataPoint(
        strategy=str(record["strategy"]),
        metrics=metrics,
        project_id=str(record.get("projectId") or DEFAULT_PROJECT_ID),
        timestamp=int(record["timestamp"]),
        metadata=record.get("metadata"),
    )


def dump_point(point: HistoricalDataPoint) -> str:
    return json.dumps(point_to_record(point))


def load_point(raw: Union[str, bytes]) -> HistoricalDataPoint:
    """Decode a stored JSON record.

    Raises:
        RecordDecodeError: If the payload is not valid JSON or not a data point.
    """
    try:
        return point_from_record(json.loads(raw))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
        raise RecordDecodeError(f"invalid historical record: {exc}") from exc
