from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

METRIC_FIELDS: tuple[str, ...] = (
    "bmp_t",
    "bmp_p",
    "bmp_qnh",
    "aht_t",
    "aht_h",
    "mq135",
    "mq3",
)

DeviceId = Union[int, float, str]


@dataclass(frozen=True)
class Reading:
    device_id: DeviceId | None
    timestamp: datetime
    metrics: dict[str, float | None] = field(default_factory=dict)

    def present(self) -> dict[str, float]:
        return {k: v for k, v in self.metrics.items() if v is not None}


@dataclass(frozen=True)
class TimePoint:
    # Unix epoch milliseconds.
    ts: float
    value: float


@dataclass(frozen=True)
class SeriesStats:
    min: float
    max: float
    avg: float


SeriesSet = dict[str, list[TimePoint]]


def empty_series_set() -> SeriesSet:
    return {name: [] for name in METRIC_FIELDS}


def to_epoch_ms(dt: datetime) -> float:
    return dt.timestamp() * 1000.0
