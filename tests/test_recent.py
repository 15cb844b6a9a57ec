from __future__ import annotations

from datetime import datetime, timedelta, timezone

from meteo.models.reading import METRIC_FIELDS, Reading
from meteo.services.recent import RecentReadingsBuffer


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current


def _reading(device_id: str, value: float, timestamp: datetime) -> Reading:
    metrics = {name: None for name in METRIC_FIELDS}
    metrics["aht_t"] = value
    return Reading(device_id=device_id, timestamp=timestamp, metrics=metrics)


def test_window_is_measured_against_the_clock(now: datetime) -> None:
    clock = _Clock(now)
    buffer = RecentReadingsBuffer(window_seconds=60, max_points=100, now=clock)

    buffer.add(_reading("d1", 1.0, now))
    # A device whose clock runs an hour ahead must not push d1 out of the window.
    buffer.add(_reading("skewed", 2.0, now + timedelta(hours=1)))

    assert [p.value for p in buffer.series()["aht_t"]] == [1.0, 2.0]
    assert [p.value for p in buffer.series(device_id="d1")["aht_t"]] == [1.0]


def test_points_expire_as_the_clock_moves(now: datetime) -> None:
    clock = _Clock(now)
    buffer = RecentReadingsBuffer(window_seconds=60, max_points=100, now=clock)
    buffer.add(_reading("d1", 1.0, now))

    clock.current = now + timedelta(seconds=61)

    assert buffer.series(device_id="d1")["aht_t"] == []
    assert buffer.series()["aht_t"] == []


def test_expired_devices_are_forgotten(now: datetime) -> None:
    clock = _Clock(now)
    buffer = RecentReadingsBuffer(window_seconds=60, max_points=100, now=clock)
    for i in range(1000):
        buffer.add(_reading(f"dev-{i}", float(i), now))

    clock.current = now + timedelta(minutes=5)
    for i in range(1000):
        assert buffer.series(device_id=f"dev-{i}")["aht_t"] == []
    buffer.series()

    assert len(buffer) == 0


def test_stale_readings_are_not_kept(now: datetime) -> None:
    buffer = RecentReadingsBuffer(window_seconds=60, max_points=100, now=lambda: now)

    buffer.add(_reading("old", 1.0, now - timedelta(minutes=10)))

    assert len(buffer) == 0


def test_device_entries_are_capped(now: datetime) -> None:
    buffer = RecentReadingsBuffer(window_seconds=60, max_points=100, max_devices=3, now=lambda: now)
    for i in range(10):
        buffer.add(_reading(f"dev-{i}", float(i), now))

    # Three devices plus the all-devices series.
    assert len(buffer) == 4
    assert buffer.series(device_id="dev-0")["aht_t"] == []
    assert [p.value for p in buffer.series(device_id="dev-9")["aht_t"]] == [9.0]
    assert len(buffer.series()["aht_t"]) == 10
