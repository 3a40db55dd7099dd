"""Estadísticas de acceso de stores para el dashboard.

Cache TTL 5min por store, cálculo con timeout y valor por defecto.
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storestats.core.cache import StatsCache
from storestats.core.config import get_settings
from storestats.core.database import get_db
from storestats.core.errors import raise_api_error
from storestats.core.limiter import limiter
from storestats.schemas.access_stats import AccessStatsResponse, DailyStatResponse
from storestats.services.access_stats_service import (
    generate_daily_stats,
    get_access_stats,
    get_store_stats,
    save_daily_stats,
)

router = APIRouter(prefix="/api/stores", tags=["access-stats"])

HISTORY_DEFAULT_DAYS = 30


def get_stats_cache(request: Request) -> StatsCache:
    return request.app.state.stats_cache


def _local_today() -> date:
    return datetime.now(timezone.utc).astimezone(ZoneInfo(get_settings().stats_timezone)).date()


@router.get("/{store_id}/stats", response_model=AccessStatsResponse)
@limiter.limit("60 per minute")
async def get_store_access_stats(
    request: Request,
    store_id: int = Path(..., ge=1),
    cache: StatsCache = Depends(get_stats_cache),
):
    return await get_access_stats(store_id, cache)


@router.delete("/{store_id}/stats/cache", status_code=204)
def clear_store_stats_cache(
    store_id: int = Path(..., ge=1),
    cache: StatsCache = Depends(get_stats_cache),
):
    cache.invalidate(store_id)
    return Response(status_code=204)


@router.post("/{store_id}/stats/daily", status_code=201, response_model=DailyStatResponse)
def create_daily_stats(
    store_id: int = Path(..., ge=1),
    day: date | None = Query(None, alias="date", description="Día a agregar (por defecto ayer)"),
    db: Session = Depends(get_db),
):
    day = day or _local_today() - timedelta(days=1)
    stats = generate_daily_stats(db, day, store_id)
    try:
        row = save_daily_stats(db, stats)
    except IntegrityError:
        logger.warning(f"Estadísticas diarias duplicadas para store {store_id} el {day}")
        raise_api_error(409, "conflict", "Ya existen estadísticas para ese día", {"store_id": store_id, "date": day.isoformat()})
    return row.to_dict()


@router.get("/{store_id}/stats/daily", response_model=list[DailyStatResponse])
def list_daily_stats(
    store_id: int = Path(..., ge=1),
    start: date | None = Query(None),
    end: date | None = Query(None),
    db: Session = Depends(get_db),
):
    end = end or _local_today()
    start = start or end - timedelta(days=HISTORY_DEFAULT_DAYS - 1)
    if start > end:
        raise_api_error(422, "validation_error", "La fecha inicial es posterior a la final", {"start": start.isoformat(), "end": end.isoformat()})
    return [row.to_dict() for row in get_store_stats(db, store_id, start, end)]
