from storestats.schemas.access_stats import (
    AccessStatsResponse,
    DailyStatResponse,
    HourlyCount,
    PeriodCount,
)

__all__ = [
    "AccessStatsResponse", "PeriodCount", "HourlyCount",
    "DailyStatResponse",
]
