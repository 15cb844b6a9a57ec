"""Pure transformations over time-point sequences used to shape chart data."""

from __future__ import annotations

import math
from collections.abc import Sequence

from meteo.models.reading import SeriesStats, TimePoint

DEFAULT_MAX_POINTS = 240
LIVE_BUFFER_MAX_POINTS = 200


def compute_stats(points: Sequence[TimePoint]) -> SeriesStats | None:
    if not points:
        return None

    lo = points[0].value
    hi = points[0].value
    total = 0.0
    for p in points:
        if p.value < lo:
            lo = p.value
        if p.value > hi:
            hi = p.value
        total += p.value

    return SeriesStats(min=lo, max=hi, avg=total / len(points))


def downsample(
    points: Sequence[TimePoint], max_points: int = DEFAULT_MAX_POINTS
) -> list[TimePoint]:
    """Reduce ``points`` to at most ``max_points`` by averaging contiguous buckets.

    Buckets hold ``ceil(len / max_points)`` consecutive points (the last one may
    be shorter); each becomes a single point at the mean timestamp and mean
    value of its members.
    """
    if max_points < 1:
        raise ValueError("max_points must be >= 1")
    if len(points) <= max_points:
        return list(points)

    bucket_size = math.ceil(len(points) / max_points)
    result: list[TimePoint] = []
    for start in range(0, len(points), bucket_size):
        bucket = points[start : start + bucket_size]
        sum_ts = 0.0
        sum_value = 0.0
        for p in bucket:
            sum_ts += p.ts
            sum_value += p.value
        result.append(
            TimePoint(ts=sum_ts / len(bucket), value=sum_value / len(bucket))
        )
    return result


def find_closest(points: Sequence[TimePoint], target_ts: float) -> TimePoint | None:
    best: TimePoint | None = None
    best_distance = math.inf
    for p in points:
        distance = abs(p.ts - target_ts)
        # Strict comparison keeps the first point on ties.
        if distance < best_distance:
            best = p
            best_distance = distance
    return best


def retention_trim(
    points: Sequence[TimePoint], now: float, window_ms: float
) -> list[TimePoint]:
    cutoff = now - window_ms
    return [p for p in points if p.ts >= cutoff]


def append_bounded(
    points: Sequence[TimePoint],
    point: TimePoint,
    max_points: int = LIVE_BUFFER_MAX_POINTS,
) -> list[TimePoint]:
    result = [*points, point]
    if len(result) > max_points:
        del result[: len(result) - max_points]
    return result

HPA_TO_MMHG = 0.75006


def hpa_to_mmhg(value: float | None) -> float | None:
    """Convert a pressure in hPa to mmHg; ``None`` passes through."""
    if value is None:
        return None
    return value * HPA_TO_MMHG
