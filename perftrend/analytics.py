"""Pure analytics functions over historical data points."""

from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    METRIC_NAMES,
    AggregatedBucket,
    HistoricalDataPoint,
    MetricStats,
    RegressionFinding,
    Timestamp,
    from_epoch_ms,
    to_epoch_ms,
)


def bucket_timestamp(timestamp_ms: int, granularity: str) -> int:
    """Truncate a timestamp down to the UTC start of its bucket."""
    moment = from_epoch_ms(timestamp_ms)
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)

    if granularity == "hour":
        start = moment.replace(minute=0, second=0, microsecond=0)
    elif granularity == "day":
        start = day_start
    elif granularity == "week":
        start = day_start - timedelta(days=day_start.weekday())
    elif granularity == "month":
        start = day_start.replace(day=1)
    else:
        raise ValueError(f"Unknown granularity: {granularity}")

    return to_epoch_ms(start)


def compute_stats(values: Iterable[float]) -> MetricStats:
    """Mean, minimum and maximum of ``values``; all zero for an empty input."""
    values_list = [float(value) for value in values]
    if not values_list:
        return MetricStats(avg=0.0, min=0.0, max=0.0)
    return MetricStats(
        avg=_average(values_list),
        min=min(values_list),
        max=max(values_list),
    )


def aggregate_points(
    points: Iterable[HistoricalDataPoint],
    granularity: str,
) -> List[AggregatedBucket]:
    """Group points into time buckets and compute per-metric statistics."""
    buckets: Dict[int, List[HistoricalDataPoint]] = {}
    for point in points:
        bucket_time = bucket_timestamp(point.timestamp, granularity)
        buckets.setdefault(bucket_time, []).append(point)

    aggregated = [
        AggregatedBucket(
            timestamp=bucket_time,
            count=len(bucket_points),
            metrics={
                name: compute_stats(_metric_values(bucket_points, name)) for name in METRIC_NAMES
            },
        )
        for bucket_time, bucket_points in buckets.items()
    ]
    return sorted(aggregated, key=lambda bucket: bucket.timestamp)


def split_baseline_current(
    points: Sequence[HistoricalDataPoint],
    mode: str = "position",
    window_start: Optional[Timestamp] = None,
    window_end: Optional[Timestamp] = None,
) -> tuple[List[HistoricalDataPoint], List[HistoricalDataPoint]]:
    """
    Split time-ordered points into an older baseline and a newer current half.

    ``position`` cuts the list at its midpoint index, so uneven sample density
    inside the window shifts which points land on each side. ``time`` cuts at
    the midpoint instant of ``[window_start, window_end]`` instead.
    """
    if mode == "position":
        mid = len(points) // 2
        return list(points[:mid]), list(points[mid:])

    if mode == "time":
        if window_start is None or window_end is None:
            raise ValueError("time split needs window_start and window_end")
        start_ms = to_epoch_ms(window_start)
        midpoint = start_ms + (to_epoch_ms(window_end) - start_ms) // 2
        baseline = [point for point in points if point.timestamp < midpoint]
        current = [point for point in points if point.timestamp >= midpoint]
        return baseline, current

    raise ValueError(f"Unknown split mode: {mode}")


def find_regressions(
    baseline: Sequence[HistoricalDataPoint],
    current: Sequence[HistoricalDataPoint],
    threshold: float = 0.2,
) -> List[RegressionFinding]:
    """
    Compare mean metric values between a baseline and a current sample.

    Every tracked metric is lower-is-better, so a positive change above
    ``threshold`` is a regression.
    """
    if not baseline or not current:
        return []

    findings: List[RegressionFinding] = []
    for name in METRIC_NAMES:
        baseline_avg = _average(_metric_values(baseline, name))
        current_avg = _average(_metric_values(current, name))
        change = _relative_change(current_avg, baseline_avg)

        if change > threshold:
            findings.append(
                RegressionFinding(
                    metric=name,
                    baseline=baseline_avg,
                    current=current_avg,
                    change=change,
                )
            )
    return findings


def detect_regressions_windowed(
    points: Sequence[HistoricalDataPoint],
    threshold: float = 0.2,
    split: str = "position",
    window_start: Optional[Timestamp] = None,
    window_end: Optional[Timestamp] = None,
) -> List[RegressionFinding]:
    """Split one time-ordered window of points and report regressions."""
    if len(points) < 2:
        return []

    baseline, current = split_baseline_current(
        points,
        mode=split,
        window_start=window_start,
        window_end=window_end,
    )
    return find_regressions(baseline, current, threshold=threshold)


def _metric_values(points: Iterable[HistoricalDataPoint], name: str) -> List[float]:
    values = []
    for point in points:
        sample = getattr(point.metrics, name, None)
        if sample is not None:
            values.append(float(sample.value))
    return values


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def _relative_change(current: float, baseline: float) -> float:
    # A metric appearing from a zero baseline counts as a full (100%) degradation.
    if baseline == 0:
        return 1.0 if current > 0 else 0.0
    return (current - baseline) / baseline
