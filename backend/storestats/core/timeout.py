"""Timeout guard for slow statistics queries."""
import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger
from prometheus_client import Counter

from storestats.core.config import Settings, get_settings
from storestats.schemas.access_stats import AccessStatsResponse

T = TypeVar("T")

STATS_FALLBACK_TOTAL = Counter(
    "access_stats_fallback_total",
    "Statistics computations answered with the fallback value",
    ["reason"],
)


def _log_orphan_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Consulta abandonada tras timeout terminó con error: {exc!r}")
    else:
        logger.debug("Consulta abandonada tras timeout terminó correctamente")


async def with_timeout(computation: Awaitable[T], timeout_ms: int, fallback: T) -> T:
    """Race ``computation`` against ``timeout_ms``; return ``fallback`` on timeout or error.

    The computation is not cancelled when the timer wins: it keeps running
    in the background and its outcome is only logged.
    """
    task = asyncio.ensure_future(computation)
    done, _ = await asyncio.wait({task}, timeout=max(timeout_ms, 0) / 1000)

    if task not in done:
        task.add_done_callback(_log_orphan_result)
        STATS_FALLBACK_TOTAL.labels(reason="timeout").inc()
        logger.warning(f"Timeout de consulta tras {timeout_ms}ms, usando valor por defecto")
        return fallback

    exc = task.exception() if not task.cancelled() else asyncio.CancelledError()
    if exc is not None:
        STATS_FALLBACK_TOTAL.labels(reason="error").inc()
        logger.warning(f"Consulta fallida ({type(exc).__name__}: {exc}), usando valor por defecto")
        return fallback
    return task.result()


def default_stats() -> AccessStatsResponse:
    return AccessStatsResponse()


def is_access_stats_enabled(settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    return not settings.disable_access_stats
