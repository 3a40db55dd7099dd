from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ACCESS_STATS_SCHEMA_VERSION = 1


class PeriodCount(BaseModel):
    total: int = Field(0, ge=0)
    unique: int = Field(0, ge=0)


class HourlyCount(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    count: int = Field(0, ge=0)


class AccessStatsResponse(BaseModel):
    """Snapshot de accesos de un store: hoy, mes en curso y desglose por hora de hoy."""

    model_config = ConfigDict(frozen=True)

    schema_version: Literal[1] = ACCESS_STATS_SCHEMA_VERSION
    today: PeriodCount = Field(default_factory=PeriodCount)
    monthly: PeriodCount = Field(default_factory=PeriodCount)
    hourly: list[HourlyCount] = Field(default_factory=list)


class DailyStatResponse(BaseModel):
    id: int
    store_id: int
    date: str
    total_visits: int
    unique_visitors: int
    hourly_stats: dict[str, int]
    created_at: str | None = None
