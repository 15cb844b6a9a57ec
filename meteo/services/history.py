from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any

from meteo.core.errors import InvalidRangeError
from meteo.models.reading import (
    DeviceId,
    SeriesSet,
    SeriesStats,
    TimePoint,
    empty_series_set,
)
from meteo.repositories.base import ReadingRepository
from meteo.services.series import compute_stats, downsample, find_closest

logger = logging.getLogger(__name__)

MAX_HISTORY_MINUTES = 12 * 60


@dataclass(frozen=True)
class HistoryResult:
    range_minutes: int
    device_id: DeviceId | None
    series: SeriesSet


def parse_range_minutes(value: Any) -> float:
    """Accepts a number or numeric string; anything not finite and > 0 is rejected."""
    if isinstance(value, bool) or value is None:
        raise InvalidRangeError()
    try:
        minutes = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidRangeError() from e
    if not math.isfinite(minutes) or minutes <= 0:
        raise InvalidRangeError()
    return minutes


def clamp_range_minutes(minutes: float, max_minutes: int = MAX_HISTORY_MINUTES) -> int:
    return max(1, min(math.floor(minutes), int(max_minutes)))


class HistoryService:
    def __init__(
        self,
        *,
        repo: ReadingRepository,
        max_minutes: int = MAX_HISTORY_MINUTES,
    ) -> None:
        self._repo = repo
        self._max_minutes = max_minutes

    def resolve_range(self, range_minutes: Any) -> int:
        return clamp_range_minutes(parse_range_minutes(range_minutes), self._max_minutes)

    async def get_history(
        self,
        range_minutes: Any,
        device_id: DeviceId | None = None,
        *,
        max_points: int | None = None,
    ) -> HistoryResult:
        effective = self.resolve_range(range_minutes)
        if device_id is not None and not str(device_id).strip():
            device_id = None

        try:
            series = await asyncio.to_thread(
                self._repo.query_series, range_minutes=effective, device_id=device_id
            )
        except Exception as e:  # noqa: BLE001 - history degrades to empty series
            logger.error(
                "history query failed: %s",
                e,
                extra={"range_minutes": effective, "device_id": device_id},
            )
            series = empty_series_set()

        shaped = empty_series_set()
        for metric in shaped:
            points = sorted(series.get(metric, []), key=lambda p: p.ts)
            if max_points is not None:
                points = downsample(points, max_points)
            shaped[metric] = points

        return HistoryResult(range_minutes=effective, device_id=device_id, series=shaped)

    async def get_stats(
        self, range_minutes: Any, device_id: DeviceId | None = None
    ) -> tuple[HistoryResult, dict[str, SeriesStats | None]]:
        result = await self.get_history(range_minutes, device_id)
        stats = {metric: compute_stats(points) for metric, points in result.series.items()}
        return result, stats

    async def probe(
        self, range_minutes: Any, target_ts: float, device_id: DeviceId | None = None
    ) -> tuple[HistoryResult, dict[str, TimePoint | None]]:
        result = await self.get_history(range_minutes, device_id)
        closest = {
            metric: find_closest(points, target_ts)
            for metric, points in result.series.items()
        }
        return result, closest
