from fnmatch import fnmatchcase

import pytest
from factories import utc

from perftrend.keys import (
    PointKey,
    aggregate_key,
    day_key,
    day_pattern,
    escape_glob,
    in_series,
    parse_point_key,
    point_key,
    point_pattern,
)
from perftrend.models import to_epoch_ms

TEN_AM = to_epoch_ms(utc(2024, 1, 1, 10, 0))


def test_point_key_uses_lowercase_strategy_utc_day_and_millis():
    assert point_key("SSR", "default", TEN_AM) == "historical:default:ssr:2024-01-01:1704103200000"


def test_day_key_matches_legacy_layout():
    assert day_key("ISR", "shop", TEN_AM) == "historical:shop:isr:2024-01-01"


def test_point_key_day_is_computed_in_utc_near_midnight():
    just_before_midnight = to_epoch_ms(utc(2024, 1, 1, 23, 59, 59))
    assert point_key("SSG", "default", just_before_midnight).split(":")[3] == "2024-01-01"


def test_point_pattern_matches_point_and_legacy_keys():
    pattern = point_pattern("SSR", "default")

    assert pattern == "historical:default:ssr:*"
    assert fnmatchcase(point_key("SSR", "default", TEN_AM), pattern)
    assert fnmatchcase(day_key("SSR", "default", TEN_AM), pattern)
    assert not fnmatchcase(point_key("SSG", "default", TEN_AM), pattern)


def test_day_pattern_only_matches_that_day():
    pattern = day_pattern("SSR", "default", TEN_AM)
    next_day = to_epoch_ms(utc(2024, 1, 2, 9, 0))

    assert fnmatchcase(point_key("SSR", "default", TEN_AM), pattern)
    assert fnmatchcase(day_key("SSR", "default", TEN_AM), pattern)
    assert not fnmatchcase(point_key("SSR", "default", next_day), pattern)


def test_patterns_escape_glob_characters_in_project_id():
    assert escape_glob("team*[a]?") == "team\\*\\[a\\]\\?"
    assert point_pattern("SSR", "team*") == "historical:team\\*:ssr:*"


@pytest.mark.parametrize(
    ("granularity", "when", "label"),
    [
        ("hour", utc(2024, 1, 1, 10, 45), "2024-01-01-10"),
        ("day", utc(2024, 1, 1, 10, 45), "2024-01-01"),
        ("week", utc(2024, 1, 3, 8, 0), "2024-W01"),
        ("week", utc(2024, 12, 30, 8, 0), "2025-W01"),
        ("week", utc(2021, 1, 1, 8, 0), "2020-W53"),
        ("month", utc(2024, 2, 29, 23, 0), "2024-02"),
    ],
)
def test_aggregate_key_labels(granularity, when, label):
    key = aggregate_key("CACHE", "default", granularity, to_epoch_ms(when))
    assert key == f"historical:agg:default:cache:{granularity}:{label}"


def test_aggregate_key_rejects_unknown_granularity():
    with pytest.raises(ValueError):
        aggregate_key("SSR", "default", "fortnight", TEN_AM)


def test_parse_point_key_inverts_point_key():
    parsed = parse_point_key(point_key("SSR", "team:web", TEN_AM))

    assert parsed == PointKey(
        project_id="team:web",
        strategy="ssr",
        date="2024-01-01",
        timestamp=1704103200000,
    )


def test_parse_point_key_reads_legacy_day_keys():
    parsed = parse_point_key("historical:default:ssg:2024-01-01")

    assert parsed == PointKey(project_id="default", strategy="ssg", date="2024-01-01")


@pytest.mark.parametrize(
    "key",
    [
        "metrics:default:ssr",
        "historical:agg:default:ssr:hour:2024-01-01-10",
        "historical:default:ssr:not-a-date",
    ],
)
def test_parse_point_key_rejects_other_keys(key):
    assert parse_point_key(key) is None


def test_parse_point_key_reads_keys_of_project_named_agg():
    parsed = parse_point_key(point_key("SSR", "agg", TEN_AM))

    assert parsed == PointKey(project_id="agg", strategy="ssr", date="2024-01-01", timestamp=TEN_AM)


def test_in_series_requires_exact_project_and_strategy():
    assert in_series(point_key("SSR", "a", TEN_AM), "SSR", "a")
    assert in_series(day_key("SSR", "a", TEN_AM), "ssr", "a")
    assert not in_series(point_key("SSR", "a:ssr", TEN_AM), "SSR", "a")
    assert not in_series(point_key("SSG", "a", TEN_AM), "SSR", "a")


def test_in_series_excludes_aggregate_keys_under_project_agg():
    day_bucket = aggregate_key("CACHE", "ssr", "day", TEN_AM)

    assert day_bucket == "historical:agg:ssr:cache:day:2024-01-01"
    assert not in_series(day_bucket, "SSR", "agg")
    assert in_series(point_key("SSR", "agg", TEN_AM), "SSR", "agg")
