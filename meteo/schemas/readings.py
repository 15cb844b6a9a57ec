from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from meteo.models.reading import Reading, SeriesSet, SeriesStats, TimePoint


class LiveReading(BaseModel):
    """One ingested sample as pushed to live subscribers."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: int | float | str | None = Field(default=None, alias="deviceId")
    bmp_t: float | None = None
    bmp_p: float | None = None
    bmp_qnh: float | None = None
    aht_t: float | None = None
    aht_h: float | None = None
    mq135: float | None = None
    mq3: float | None = None
    ts: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> LiveReading:
        return cls(device_id=reading.device_id, ts=reading.timestamp, **reading.metrics)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class TimePointOut(BaseModel):
    ts: float
    value: float


class StatsOut(BaseModel):
    min: float
    max: float
    avg: float


class HistoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    range_minutes: int = Field(alias="rangeMinutes", ge=1)
    device_id: int | float | str | None = Field(default=None, alias="deviceId")
    points: dict[str, list[TimePointOut]]


class HistoryStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    range_minutes: int = Field(alias="rangeMinutes", ge=1)
    device_id: int | float | str | None = Field(default=None, alias="deviceId")
    stats: dict[str, StatsOut | None]


class HistoryProbeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    range_minutes: int = Field(alias="rangeMinutes", ge=1)
    device_id: int | float | str | None = Field(default=None, alias="deviceId")
    ts: float
    values: dict[str, TimePointOut | None]


class RecentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    window_seconds: int = Field(alias="windowSeconds", ge=1)
    device_id: int | float | str | None = Field(default=None, alias="deviceId")
    points: dict[str, list[TimePointOut]]


class IngestStatsResponse(BaseModel):
    received: int = Field(ge=0)
    malformed: int = Field(ge=0)
    persisted: int = Field(ge=0)
    persist_failed: int = Field(ge=0)
    persist_dropped: int = Field(ge=0)
    published: int = Field(ge=0)
    subscribers: int = Field(ge=0)


class ErrorResponse(BaseModel):
    error: str


def points_out(series: SeriesSet) -> dict[str, list[TimePointOut]]:
    return {
        metric: [TimePointOut(ts=p.ts, value=p.value) for p in points]
        for metric, points in series.items()
    }


def point_out(point: TimePoint | None) -> TimePointOut | None:
    if point is None:
        return None
    return TimePointOut(ts=point.ts, value=point.value)


def stats_out(stats: SeriesStats | None) -> StatsOut | None:
    if stats is None:
        return None
    return StatsOut(min=stats.min, max=stats.max, avg=stats.avg)
