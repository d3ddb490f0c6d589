"""Application service storing data points and running analytics over them."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from .adapters import create_backend
from .analytics import aggregate_points, detect_regressions_windowed
from .config import Settings, get_settings
from .keys import day_pattern, in_series, point_key, point_pattern
from .log import get_logger
from .models import (
    GRANULARITIES,
    AggregatedBucket,
    HistoricalDataPoint,
    RegressionFinding,
    Timestamp,
    TimeRangeQuery,
    dump_point,
    load_point,
    to_epoch_ms,
)
from .ports import KeyValueBackend

logger = get_logger(__name__)


class HistoricalMetricsService:
    """
    Facade over a key-value backend for historical performance data.

    Every public operation is fail-soft: backend and decoding errors are logged
    and turned into ``False``, ``None`` or ``[]`` instead of being raised, so
    callers cannot tell "no data" apart from "backend unavailable".
    """

    def __init__(self, backend: KeyValueBackend, settings: Optional[Settings] = None):
        self.backend = backend
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "HistoricalMetricsService":
        settings = settings or get_settings()
        return cls(create_backend(settings), settings)

    async def save(
        self,
        point: HistoricalDataPoint,
        timestamp: Optional[Timestamp] = None,
    ) -> bool:
        """
        Persist one data point.

        The timestamp is taken from ``timestamp``, then ``point.timestamp``,
        then the current time. Every write gets its own key, so earlier points
        from the same day are kept.
        """
        key = None
        try:
            if timestamp is not None:
                resolved = to_epoch_ms(timestamp)
            elif point.timestamp is not None:
                resolved = to_epoch_ms(point.timestamp)
            else:
                resolved = _now_ms()
            stored = replace(
                point,
                timestamp=resolved,
                project_id=point.project_id or self.settings.default_project_id,
            )
            key = point_key(stored.strategy, stored.project_id, resolved)
            saved = await self.backend.set(
                key,
                dump_point(stored),
                self.settings.historical_retention_seconds,
            )
        except Exception:
            logger.exception(
                "historical_save_failed",
                strategy=point.strategy,
                project_id=point.project_id,
                key=key,
            )
            return False

        if not saved:
            logger.warning("historical_save_rejected", key=key)
            return False
        logger.debug("historical_saved", key=key, timestamp=resolved)
        return True

    async def get(
        self,
        strategy: str,
        project_id: Optional[str] = None,
        date: Optional[Timestamp] = None,
    ) -> Optional[HistoricalDataPoint]:
        """Return the latest snapshot of the UTC day containing ``date`` (default today)."""
        project_id = project_id or self.settings.default_project_id
        try:
            timestamp_ms = to_epoch_ms(date) if date is not None else _now_ms()
            keys = await self.backend.list_keys(day_pattern(strategy, project_id, timestamp_ms))
            points = await self._fetch_points(
                [key for key in keys if in_series(key, strategy, project_id)]
            )
        except Exception:
            logger.exception(
                "historical_get_failed",
                strategy=strategy,
                project_id=project_id,
                date=str(date) if date is not None else None,
            )
            return None

        if not points:
            return None
        return max(points, key=lambda point: point.timestamp)

    async def query(self, query: TimeRangeQuery) -> List[HistoricalDataPoint]:
        """
        Return every point in ``[start_date, end_date]``, oldest first.

        Without a strategy, each configured strategy is scanned in turn; the
        discovered keys are then fetched in one batch.
        """
        project_id = query.project_id or self.settings.default_project_id
        strategies = [query.strategy] if query.strategy else list(self.settings.strategies)
        try:
            start_ms = to_epoch_ms(query.start_date)
            end_ms = to_epoch_ms(query.end_date, end_of_day=True)

            keys: List[str] = []
            for strategy in strategies:
                found = await self.backend.list_keys(point_pattern(strategy, project_id))
                keys.extend(key for key in found if in_series(key, strategy, project_id))
            keys = list(dict.fromkeys(keys))

            points = await self._fetch_points(keys)
        except Exception:
            logger.exception(
                "historical_query_failed",
                strategy=query.strategy,
                project_id=project_id,
            )
            return []

        in_range = [point for point in points if start_ms <= point.timestamp <= end_ms]
        return sorted(in_range, key=lambda point: point.timestamp)

    async def aggregate(
        self,
        strategy: str,
        project_id: Optional[str],
        granularity: str,
        start_date: Timestamp,
        end_date: Timestamp,
    ) -> List[AggregatedBucket]:
        """Roll the points of a time window up into hour/day/week/month buckets."""
        if granularity not in GRANULARITIES:
            logger.error(
                "historical_aggregate_failed",
                reason="unknown_granularity",
                granularity=granularity,
            )
            return []

        points = await self.query(
            TimeRangeQuery(
                start_date=start_date,
                end_date=end_date,
                strategy=strategy,
                project_id=project_id or self.settings.default_project_id,
            )
        )
        if not points:
            return []

        try:
            return aggregate_points(points, granularity)
        except Exception:
            logger.exception(
                "historical_aggregate_failed",
                strategy=strategy,
                project_id=project_id,
                granularity=granularity,
            )
            return []

    async def detect_regressions(
        self,
        strategy: str,
        project_id: Optional[str] = None,
        threshold: Optional[float] = None,
        now: Optional[datetime] = None,
        split: str = "position",
    ) -> List[RegressionFinding]:
        """
        Compare the older and newer halves of the trailing window.

        Example: with the default 7-day window, a mean ``lcp`` moving from 2000
        to 2500 (+25%) is reported at the default 0.2 threshold.
        """
        project_id = project_id or self.settings.default_project_id
        if threshold is None:
            threshold = self.settings.regression_threshold
        window_end = now or datetime.now(timezone.utc)
        window_start = window_end - timedelta(days=self.settings.regression_window_days)

        points = await self.query(
            TimeRangeQuery(
                start_date=window_start,
                end_date=window_end,
                strategy=strategy,
                project_id=project_id,
            )
        )

        try:
            findings = detect_regressions_windowed(
                points,
                threshold=threshold,
                split=split,
                window_start=window_start,
                window_end=window_end,
            )
        except Exception:
            logger.exception(
                "regression_detection_failed",
                strategy=strategy,
                project_id=project_id,
                split=split,
            )
            return []

        if findings:
            logger.info(
                "regressions_detected",
                strategy=strategy,
                project_id=project_id,
                metrics=[finding.metric for finding in findings],
            )
        return findings

    async def get_latest_metrics(
        self,
        project_id: Optional[str] = None,
    ) -> Dict[str, Optional[HistoricalDataPoint]]:
        """Today's latest snapshot for every configured strategy."""
        return {
            strategy: await self.get(strategy, project_id)
            for strategy in self.settings.strategies
        }

    async def _fetch_points(self, keys: Sequence[str]) -> List[HistoricalDataPoint]:
        if not keys:
            return []
        values = await self.backend.multi_get(keys)
        return [load_point(value) for value in values if value is not None]


def _now_ms() -> int:
    return to_epoch_ms(datetime.now(timezone.utc))
