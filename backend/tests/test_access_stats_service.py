import asyncio
import threading
import time
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from storestats.core.cache import StatsCache
from storestats.core.config import Settings
from storestats.schemas.access_stats import AccessStatsResponse, PeriodCount
from storestats.services import access_stats_service
from storestats.services.access_stats_service import (
    compute_access_stats,
    generate_daily_stats,
    get_access_stats,
    get_store_stats,
    save_daily_stats,
)

NOW = datetime(2026, 3, 15, 14, 30, tzinfo=timezone.utc)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def sample_logs(add_access):
    add_access(1, "a" * 64, _utc(2026, 3, 15, 10, 5))
    add_access(1, "b" * 64, _utc(2026, 3, 15, 10, 40))
    add_access(1, "a" * 64, _utc(2026, 3, 15, 14, 0))
    add_access(1, "c" * 64, _utc(2026, 3, 2, 8, 0))
    add_access(1, "a" * 64, _utc(2026, 3, 2, 9, 0))
    add_access(1, "d" * 64, _utc(2026, 2, 28, 23, 59))
    add_access(2, "a" * 64, _utc(2026, 3, 15, 11, 0))


def test_compute_access_stats_counts(db_session, sample_logs):
    stats = compute_access_stats(db_session, 1, now=NOW, tz_name="UTC")

    assert stats.today == PeriodCount(total=3, unique=2)
    assert stats.monthly == PeriodCount(total=5, unique=3)
    assert len(stats.hourly) == 24
    assert [h.hour for h in stats.hourly] == list(range(24))
    assert stats.hourly[10].count == 2
    assert stats.hourly[14].count == 1
    assert sum(h.count for h in stats.hourly) == 3


def test_compute_access_stats_other_store_isolated(db_session, sample_logs):
    stats = compute_access_stats(db_session, 2, now=NOW, tz_name="UTC")
    assert stats.today == PeriodCount(total=1, unique=1)
    assert stats.hourly[11].count == 1


def test_compute_access_stats_empty_store(db_session):
    stats = compute_access_stats(db_session, 3, now=NOW, tz_name="UTC")
    assert stats.today == PeriodCount(total=0, unique=0)
    assert stats.monthly == PeriodCount(total=0, unique=0)
    assert all(h.count == 0 for h in stats.hourly)


def test_compute_access_stats_uses_local_day(db_session, add_access):
    # 03:00 UTC del 15 es 22:00 del 14 en Bogotá (UTC-5)
    add_access(1, "a" * 64, _utc(2026, 3, 15, 3, 0))
    add_access(1, "b" * 64, _utc(2026, 3, 15, 13, 0))

    stats = compute_access_stats(db_session, 1, now=NOW, tz_name="America/Bogota")
    assert stats.today.total == 1
    assert stats.hourly[8].count == 1
    assert stats.monthly.total == 2


def test_generate_and_save_daily_stats(db_session, sample_logs):
    stats = generate_daily_stats(db_session, date(2026, 3, 15), 1, tz_name="UTC")
    assert stats["date"] == "2026-03-15"
    assert stats["total_visits"] == 3
    assert stats["unique_visitors"] == 2
    assert stats["hourly_stats"]["10"] == 2
    assert stats["hourly_stats"]["00"] == 0
    assert len(stats["hourly_stats"]) == 24

    row = save_daily_stats(db_session, stats)
    assert row.id is not None
    assert row.to_dict()["hourly_stats"]["14"] == 1


def test_save_daily_stats_duplicate_raises(db_session, sample_logs):
    stats = generate_daily_stats(db_session, date(2026, 3, 15), 1, tz_name="UTC")
    save_daily_stats(db_session, stats)
    with pytest.raises(IntegrityError):
        save_daily_stats(db_session, dict(stats))


def test_get_store_stats_range_newest_first(db_session, sample_logs):
    for day in (date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 15)):
        save_daily_stats(db_session, generate_daily_stats(db_session, day, 1, tz_name="UTC"))
    save_daily_stats(db_session, generate_daily_stats(db_session, date(2026, 3, 15), 2, tz_name="UTC"))

    rows = get_store_stats(db_session, 1, date(2026, 3, 2), date(2026, 3, 15))
    assert [r.date for r in rows] == ["2026-03-15", "2026-03-02"]
    assert rows[1].total_visits == 2


def test_get_access_stats_disabled_skips_computation(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("no debería calcular")

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _fail)
    cache = StatsCache()
    result = asyncio.run(get_access_stats(1, cache, Settings(disable_access_stats=True)))
    assert result == AccessStatsResponse()
    assert len(cache) == 0


def test_get_access_stats_caches_computed_result(monkeypatch):
    calls = []

    def _compute(store_id, tz_name):
        calls.append(store_id)
        return AccessStatsResponse(today=PeriodCount(total=4, unique=2))

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _compute)
    cache = StatsCache()
    settings = Settings(stats_query_timeout_ms=2000)

    first = asyncio.run(get_access_stats(7, cache, settings))
    second = asyncio.run(get_access_stats(7, cache, settings))
    assert first.today.total == 4
    assert second == first
    assert calls == [7]


def test_get_access_stats_failure_returns_default_and_is_not_cached(monkeypatch):
    def _compute(store_id, tz_name):
        raise RuntimeError("consulta rota")

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _compute)
    cache = StatsCache()
    result = asyncio.run(get_access_stats(7, cache, Settings()))
    assert result == AccessStatsResponse()
    assert cache.get(7) is None


def test_get_access_stats_timeout_returns_default(monkeypatch):
    def _compute(store_id, tz_name):
        time.sleep(0.3)
        return AccessStatsResponse(today=PeriodCount(total=9, unique=9))

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _compute)
    cache = StatsCache()
    result = asyncio.run(get_access_stats(7, cache, Settings(stats_query_timeout_ms=20)))
    assert result.today.total == 0
    assert cache.get(7) is None


def test_get_access_stats_reads_real_database(sample_logs):
    cache = StatsCache()
    result = asyncio.run(get_access_stats(2, cache, Settings(stats_timezone="UTC")))
    # Los datos de prueba son de 2026-03-15; el recuento de hoy depende de la fecha real
    assert len(result.hourly) == 24
    assert cache.get(2) is result


def test_get_access_stats_discards_result_when_invalidated_mid_computation(monkeypatch):
    def _compute(store_id, tz_name):
        time.sleep(0.2)
        return AccessStatsResponse(today=PeriodCount(total=1, unique=1))

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _compute)
    cache = StatsCache()

    async def scenario():
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cache.invalidate, 1)
        return await get_access_stats(1, cache, Settings(stats_query_timeout_ms=2000))

    result = asyncio.run(scenario())
    # La petición en curso recibe su resultado, pero no se guarda
    assert result.today.total == 1
    assert cache.get(1) is None


def test_get_access_stats_runs_on_named_executor(monkeypatch):
    threads = []

    def _compute(store_id, tz_name):
        threads.append(threading.current_thread().name)
        return AccessStatsResponse()

    monkeypatch.setattr(access_stats_service, "_compute_in_own_session", _compute)
    asyncio.run(get_access_stats(1, StatsCache(), Settings()))
    assert threads and threads[0].startswith("access-stats")
