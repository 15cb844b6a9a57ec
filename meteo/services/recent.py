from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable

from meteo.models.reading import (
    METRIC_FIELDS,
    DeviceId,
    Reading,
    SeriesSet,
    TimePoint,
    empty_series_set,
    to_epoch_ms,
)
from meteo.services.series import append_bounded, retention_trim

ALL_DEVICES = "*"
DEFAULT_MAX_DEVICES = 1024


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class RecentReadingsBuffer:
    """Per-device live points kept for a fixed wall-clock window.

    The window is measured against ``now()``, never against reading timestamps,
    so a device with a skewed clock cannot evict other devices' points. Device
    entries are dropped once every metric list is empty, and at most
    ``max_devices`` device entries are held (oldest first out).
    """

    def __init__(
        self,
        *,
        window_seconds: int,
        max_points: int,
        max_devices: int = DEFAULT_MAX_DEVICES,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._window_ms = float(window_seconds) * 1000.0
        self._max_points = max(int(max_points), 1)
        self._max_devices = max(int(max_devices), 1)
        self._now = now
        self._lock = threading.Lock()
        self._by_device: dict[str, SeriesSet] = {}

    @property
    def window_seconds(self) -> int:
        return int(self._window_ms // 1000)

    def __len__(self) -> int:
        """Number of device entries currently held (including the all-devices entry)."""
        with self._lock:
            return len(self._by_device)

    def add(self, reading: Reading) -> None:
        ts = to_epoch_ms(reading.timestamp)
        now_ms = to_epoch_ms(self._now())
        keys = [ALL_DEVICES]
        if reading.device_id is not None:
            keys.append(str(reading.device_id))

        with self._lock:
            for key in keys:
                series = self._by_device.get(key)
                if series is None:
                    series = empty_series_set()
                    self._by_device[key] = series
                for metric, value in reading.present().items():
                    series[metric] = append_bounded(
                        series[metric], TimePoint(ts=ts, value=value), self._max_points
                    )
                self._trim(key, now_ms)
            self._evict_overflow()

    def series(
        self, *, device_id: DeviceId | None = None, now: datetime | None = None
    ) -> SeriesSet:
        now_ms = to_epoch_ms(now or self._now())
        key = ALL_DEVICES if device_id is None else str(device_id)

        with self._lock:
            stored = self._trim(key, now_ms)
            if stored is None:
                return empty_series_set()
            # Points arrive in ingestion order, which is not guaranteed across devices.
            return {
                metric: sorted(points, key=lambda p: p.ts)
                for metric, points in stored.items()
            }

    def _trim(self, key: str, now_ms: float) -> SeriesSet | None:
        stored = self._by_device.get(key)
        if stored is None:
            return None
        for metric in METRIC_FIELDS:
            stored[metric] = retention_trim(stored[metric], now_ms, self._window_ms)
        if not any(stored.values()):
            del self._by_device[key]
            return None
        return stored

    def _evict_overflow(self) -> None:
        device_keys = [k for k in self._by_device if k != ALL_DEVICES]
        for key in device_keys[: max(len(device_keys) - self._max_devices, 0)]:
            del self._by_device[key]
