from datetime import date

import pytest
from factories import make_point, utc
from sqlalchemy.ext.asyncio import create_async_engine

from perftrend.adapters import SQLAlchemyKeyValueBackend
from perftrend.errors import BackendError
from perftrend.models import TimeRangeQuery
from perftrend.service import HistoricalMetricsService


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _backend(tmp_path, clock=None):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}")
    return SQLAlchemyKeyValueBackend(engine, clock=clock or FakeClock())


@pytest.mark.asyncio
async def test_set_get_and_overwrite(tmp_path):
    backend = _backend(tmp_path)
    try:
        assert await backend.set("historical:default:ssr:2024-01-01", "first", 60)
        assert await backend.set("historical:default:ssr:2024-01-01", "second", 60)

        assert await backend.get("historical:default:ssr:2024-01-01") == "second"
        assert await backend.get("missing") is None
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_expired_values_are_hidden(tmp_path):
    clock = FakeClock()
    backend = _backend(tmp_path, clock)
    try:
        await backend.set("short", "value", 10)
        await backend.set("long", "value", 1000)
        clock.now += 11

        assert await backend.get("short") is None
        assert await backend.list_keys("*") == ["long"]
        assert await backend.multi_get(["short", "long"]) == [None, "value"]
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_list_keys_follows_glob_semantics(tmp_path):
    backend = _backend(tmp_path)
    try:
        for key in [
            "historical:default:ssr:2024-01-01:1",
            "historical:default:ssr:2024-01-02:2",
            "historical:DEFAULT:ssr:2024-01-01:3",
            "historical:default:ssg:2024-01-01:4",
            "historical:team*:ssr:2024-01-01:5",
            "historical:team_x:ssr:2024-01-01:6",
        ]:
            await backend.set(key, "{}", 60)

        assert await backend.list_keys("historical:default:ssr:*") == [
            "historical:default:ssr:2024-01-01:1",
            "historical:default:ssr:2024-01-02:2",
        ]
        assert await backend.list_keys("historical:default:ss?:2024-01-01*") == [
            "historical:default:ssg:2024-01-01:4",
            "historical:default:ssr:2024-01-01:1",
        ]
        assert await backend.list_keys("historical:team\\*:ssr:*") == ["historical:team*:ssr:2024-01-01:5"]
        assert await backend.list_keys("historical:team_:ssr:*") == []
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_multi_get_preserves_order_and_length(tmp_path):
    backend = _backend(tmp_path)
    try:
        await backend.set("a", "1", 60)
        await backend.set("b", "2", 60)

        assert await backend.multi_get(["b", "missing", "a", "b"]) == ["2", None, "1", "2"]
        assert await backend.multi_get([]) == []
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_database_errors_become_backend_errors(tmp_path):
    backend = _backend(tmp_path)
    backend.table = "no such table"
    try:
        with pytest.raises(BackendError) as excinfo:
            await backend.get("a")
        assert excinfo.value.operation == "create_schema"
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_service_scenario_on_sql_backend(tmp_path, settings):
    backend = _backend(tmp_path)
    service = HistoricalMetricsService(backend, settings)
    try:
        for when, lcp in [
            (utc(2024, 1, 1, 10), 1800),
            (utc(2024, 1, 1, 14), 2000),
            (utc(2024, 1, 2, 9), 1900),
        ]:
            assert await service.save(make_point(when, lcp=lcp))

        points = await service.query(
            TimeRangeQuery(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2), strategy="SSR")
        )
        buckets = await service.aggregate("SSR", "default", "day", date(2024, 1, 1), date(2024, 1, 2))

        assert [point.metrics.lcp.value for point in points] == [1800, 2000, 1900]
        assert [bucket.count for bucket in buckets] == [2, 1]
    finally:
        await backend.close()
