from __future__ import annotations

import pytest

from meteo.models.reading import SeriesStats, TimePoint
from meteo.services.series import (
    append_bounded,
    compute_stats,
    downsample,
    find_closest,
    hpa_to_mmhg,
    retention_trim,
)


def _points(n: int) -> list[TimePoint]:
    return [TimePoint(ts=float(i * 1000), value=float(i)) for i in range(n)]


def test_compute_stats() -> None:
    points = [TimePoint(ts=1, value=1), TimePoint(ts=2, value=5), TimePoint(ts=3, value=3)]
    assert compute_stats(points) == SeriesStats(min=1, max=5, avg=3)


def test_compute_stats_empty() -> None:
    assert compute_stats([]) is None


def test_downsample_identity_when_small() -> None:
    points = _points(10)
    assert downsample(points, 10) == points
    assert downsample(points, 50) == points


def test_downsample_buckets_cover_input_once() -> None:
    points = _points(10)
    result = downsample(points, 4)

    # ceil(10 / 4) == 3 -> buckets [0..2], [3..5], [6..8], [9]
    assert len(result) <= 4
    assert result == [
        TimePoint(ts=1000.0, value=1.0),
        TimePoint(ts=4000.0, value=4.0),
        TimePoint(ts=7000.0, value=7.0),
        TimePoint(ts=9000.0, value=9.0),
    ]


def test_downsample_preserves_mean_and_is_deterministic() -> None:
    points = [TimePoint(ts=float(i), value=float((i * 37) % 11)) for i in range(1000)]
    first = downsample(points, 240)
    assert first == downsample(points, 240)
    assert len(first) <= 240
    assert first[0].ts < first[-1].ts
    bucket = 5  # ceil(1000 / 240)
    total = sum(p.value for p in points)
    assert sum(p.value * bucket for p in first) == pytest.approx(total)


def test_downsample_rejects_non_positive_budget() -> None:
    with pytest.raises(ValueError):
        downsample(_points(3), 0)


def test_find_closest() -> None:
    points = [TimePoint(ts=10, value=1), TimePoint(ts=20, value=2)]
    assert find_closest(points, 19) == TimePoint(ts=20, value=2)
    assert find_closest(points, 15) == TimePoint(ts=10, value=1)
    assert find_closest([], 15) is None


def test_retention_trim() -> None:
    points = [TimePoint(ts=30000, value=1), TimePoint(ts=50000, value=2)]
    assert retention_trim(points, now=100000, window_ms=60000) == [
        TimePoint(ts=50000, value=2)
    ]


def test_retention_trim_keeps_boundary() -> None:
    points = [TimePoint(ts=40000, value=1)]
    assert retention_trim(points, now=100000, window_ms=60000) == points


def test_append_bounded_drops_oldest() -> None:
    points = _points(3)
    result = append_bounded(points, TimePoint(ts=9999, value=9), max_points=3)
    assert [p.value for p in result] == [1.0, 2.0, 9.0]
    assert len(points) == 3


def test_hpa_to_mmhg() -> None:
    assert hpa_to_mmhg(1000.0) == pytest.approx(750.06)
    assert hpa_to_mmhg(0.0) == 0.0
    assert hpa_to_mmhg(None) is None
