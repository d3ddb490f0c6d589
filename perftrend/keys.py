"""Key and pattern construction for historical data in a flat key-value store.

Layout::

    historical:{project}:{strategy}:{YYYY-MM-DD}:{epoch_ms}   one data point
    historical:{project}:{strategy}:{YYYY-MM-DD}              legacy day snapshot
    historical:agg:{project}:{strategy}:{granularity}:{label} aggregate bucket

All calendar fields are computed in UTC so writers and readers agree on day
boundaries.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .models import from_epoch_ms

HISTORICAL_PREFIX = "historical"
AGGREGATE_NAMESPACE = "agg"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")
_DATE_SEGMENT = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class PointKey:
    project_id: str
    strategy: str
    date: str
    timestamp: Optional[int] = None


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so ``value`` only matches itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def utc_date(timestamp_ms: int) -> str:
    return from_epoch_ms(timestamp_ms).strftime("%Y-%m-%d")


def _series_prefix(strategy: str, project_id: str) -> str:
    return f"{HISTORICAL_PREFIX}:{project_id}:{strategy.lower()}"


def point_key(strategy: str, project_id: str, timestamp_ms: int) -> str:
    return f"{_series_prefix(strategy, project_id)}:{utc_date(timestamp_ms)}:{int(timestamp_ms)}"


def day_key(strategy: str, project_id: str, timestamp_ms: int) -> str:
    return f"{_series_prefix(strategy, project_id)}:{utc_date(timestamp_ms)}"


def point_pattern(strategy: str, project_id: str) -> str:
    """Pattern matching every stored point of one strategy/project series."""
    return f"{_series_prefix(strategy, escape_glob(project_id))}:*"


def day_pattern(strategy: str, project_id: str, timestamp_ms: int) -> str:
    """Pattern matching the legacy day key and every point key of that UTC day."""
    return f"{_series_prefix(strategy, escape_glob(project_id))}:{utc_date(timestamp_ms)}*"


def bucket_label(granularity: str, timestamp_ms: int) -> str:
    moment = from_epoch_ms(timestamp_ms)
    if granularity == "hour":
        return moment.strftime("%Y-%m-%d-%H")
    if granularity == "day":
        return moment.strftime("%Y-%m-%d")
    if granularity == "week":
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "month":
        return moment.strftime("%Y-%m")
    raise ValueError(f"Unknown granularity: {granularity}")


def aggregate_key(strategy: str, project_id: str, granularity: str, timestamp_ms: int) -> str:
    label = bucket_label(granularity, timestamp_ms)
    return (
        f"{HISTORICAL_PREFIX}:{AGGREGATE_NAMESPACE}:{project_id}:"
        f"{strategy.lower()}:{granularity}:{label}"
    )


def parse_point_key(key: str) -> Optional[PointKey]:
    """Split a point or legacy day key back into its parts.

    Returns ``None`` for keys that do not end in a date or date plus epoch-ms
    segment. Project ids may contain ``:``, so the key is split from the right.
    """
    prefix = f"{HISTORICAL_PREFIX}:"
    if not key.startswith(prefix):
        return None
    rest = key[len(prefix):]

    parts = rest.rsplit(":", 3)
    if len(parts) == 4 and parts[3].isdigit() and _DATE_SEGMENT.match(parts[2]):
        project_id, strategy, date, timestamp = parts
        return PointKey(project_id=project_id, strategy=strategy, date=date, timestamp=int(timestamp))

    parts = rest.rsplit(":", 2)
    if len(parts) == 3 and _DATE_SEGMENT.match(parts[2]):
        project_id, strategy, date = parts
        return PointKey(project_id=project_id, strategy=strategy, date=date)
    return None


def in_series(key: str, strategy: str, project_id: str) -> bool:
    """True when ``key`` is a point or day key of exactly this strategy/project.

    A series pattern also matches keys of projects whose id extends
    ``project_id`` with ``:``, and aggregate keys share their prefix with
    project ``agg``.
    """
    parsed = parse_point_key(key)
    return (
        parsed is not None
        and parsed.project_id == project_id
        and parsed.strategy == strategy.lower()
    )
