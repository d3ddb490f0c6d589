"""perftrend - time-series storage and trend analysis for Core Web Vitals."""

from .analytics import (
    aggregate_points,
    bucket_timestamp,
    compute_stats,
    detect_regressions_windowed,
    find_regressions,
    split_baseline_current,
)
from .models import (
    AggregatedBucket,
    CoreMetrics,
    HistoricalDataPoint,
    MetricSample,
    MetricStats,
    RegressionFinding,
    TimeRangeQuery,
)
from .service import HistoricalMetricsService

__all__ = [
    "HistoricalMetricsService",
    "aggregate_points",
    "bucket_timestamp",
    "compute_stats",
    "detect_regressions_windowed",
    "find_regressions",
    "split_baseline_current",
    "AggregatedBucket",
    "CoreMetrics",
    "HistoricalDataPoint",
    "MetricSample",
    "MetricStats",
    "RegressionFinding",
    "TimeRangeQuery",
]

__version__ = "0.1.0"
