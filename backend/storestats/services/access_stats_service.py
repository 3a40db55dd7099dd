"""Cálculo de estadísticas de acceso por store.

Ventanas de día y mes en la zona horaria configurada (STATS_TIMEZONE).
Totales con COUNT(*), únicos con COUNT(DISTINCT ip_hash).
"""
import asyncio
import concurrent.futures
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from storestats.core.cache import StatsCache
from storestats.core.config import Settings, get_settings
from storestats.core.database import session_scope
from storestats.core.timeout import default_stats, is_access_stats_enabled, with_timeout
from storestats.models.access_log import AccessLog, AccessStat
from storestats.schemas.access_stats import AccessStatsResponse, HourlyCount, PeriodCount

# Los cálculos abandonados tras un timeout siguen ocupando un hilo hasta terminar
stats_executor = concurrent.futures.ThreadPoolExecutor(
    max_workers=get_settings().stats_max_workers,
    thread_name_prefix="access-stats",
)


def _as_utc(dt: datetime) -> datetime:
    # SQLite devuelve fechas naive: se asumen en UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _count_period(db: Session, store_id: int, start: datetime, end: datetime) -> PeriodCount:
    row = db.query(
        func.count(AccessLog.id).label("total"),
        func.count(func.distinct(AccessLog.ip_hash)).label("unique"),
    ).filter(
        AccessLog.store_id == store_id,
        AccessLog.created_at >= start,
        AccessLog.created_at < end,
    ).one()
    return PeriodCount(total=row.total or 0, unique=row.unique or 0)


def _hourly_counts(db: Session, store_id: int, start: datetime, end: datetime, tz: ZoneInfo) -> list[int]:
    # Agrupado en Python: la hora local depende de la zona configurada
    buckets = [0] * 24
    rows = db.query(AccessLog.created_at).filter(
        AccessLog.store_id == store_id,
        AccessLog.created_at >= start,
        AccessLog.created_at < end,
    ).yield_per(1000)
    for (created_at,) in rows:
        buckets[_as_utc(created_at).astimezone(tz).hour] += 1
    return buckets


def compute_access_stats(db: Session, store_id: int, now: datetime | None = None, tz_name: str | None = None) -> AccessStatsResponse:
    tz = ZoneInfo(tz_name or get_settings().stats_timezone)
    local_now = _as_utc(now or datetime.now(timezone.utc)).astimezone(tz)
    today = local_now.date()

    day_start, day_end = _day_bounds(today, tz)
    month_start, _ = _day_bounds(today.replace(day=1), tz)

    hourly = _hourly_counts(db, store_id, day_start, day_end, tz)
    return AccessStatsResponse(
        today=_count_period(db, store_id, day_start, day_end),
        monthly=_count_period(db, store_id, month_start, day_end),
        hourly=[HourlyCount(hour=h, count=c) for h, c in enumerate(hourly)],
    )


def generate_daily_stats(db: Session, day: date, store_id: int, tz_name: str | None = None) -> dict:
    """Agrega los accesos de un día completo para un store."""
    tz = ZoneInfo(tz_name or get_settings().stats_timezone)
    start, end = _day_bounds(day, tz)
    period = _count_period(db, store_id, start, end)
    hourly = _hourly_counts(db, store_id, start, end, tz)
    return {
        "store_id": store_id,
        "date": day.strftime("%Y-%m-%d"),
        "total_visits": period.total,
        "unique_visitors": period.unique,
        "hourly_stats": {f"{h:02d}": c for h, c in enumerate(hourly)},
        "created_at": datetime.now(timezone.utc),
    }


def save_daily_stats(db: Session, stats: dict) -> AccessStat:
    row = AccessStat(**stats)
    try:
        db.add(row)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error guardando estadísticas diarias del store {stats.get('store_id')}: {e}")
        raise
    db.refresh(row)
    logger.info(f"Estadísticas diarias guardadas para store {row.store_id} el {row.date}")
    return row


def get_store_stats(db: Session, store_id: int, start: date, end: date) -> list[AccessStat]:
    return (
        db.query(AccessStat)
        .filter(
            AccessStat.store_id == store_id,
            AccessStat.date >= start.strftime("%Y-%m-%d"),
            AccessStat.date <= end.strftime("%Y-%m-%d"),
        )
        .order_by(AccessStat.date.desc())
        .all()
    )


def _compute_in_own_session(store_id: int, tz_name: str) -> AccessStatsResponse:
    with session_scope() as db:
        return compute_access_stats(db, store_id, tz_name=tz_name)


async def get_access_stats(store_id: int, cache: StatsCache, settings: Settings | None = None) -> AccessStatsResponse:
    """Estadísticas del store desde cache o recalculadas con límite de tiempo.

    El valor por defecto devuelto tras un timeout o error no se guarda en
    cache, así la siguiente petición vuelve a intentarlo.
    Tampoco se guarda un resultado si la cache del store se invalidó
    mientras se calculaba.
    """
    settings = settings or get_settings()
    if not is_access_stats_enabled(settings):
        return default_stats()

    cached = cache.get(store_id)
    if cached is not None:
        return cached

    generation = cache.generation(store_id)
    fallback = default_stats()
    loop = asyncio.get_running_loop()
    result = await with_timeout(
        loop.run_in_executor(stats_executor, _compute_in_own_session, store_id, settings.stats_timezone),
        settings.stats_query_timeout_ms,
        fallback,
    )
    if result is not fallback:
        cache.set_if_generation(store_id, generation, result)
    return result
