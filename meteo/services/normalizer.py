"""Turns untyped device payloads into typed readings.

Every metric is parsed independently: a value is either a finite float or
``None``. Nothing here raises; malformed input degrades to absent fields.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable

from meteo.models.reading import METRIC_FIELDS, DeviceId, Reading


def parse_metric(value: Any) -> float | None:
    if value is None or value is False or value is True:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_device_id(value: Any) -> DeviceId | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value) if value.is_integer() else value
    return None


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            # Epoch milliseconds, as sent by the devices' clients.
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        if isinstance(value, str) and value.strip():
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            if dt.tzinfo is None:
                return dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def normalize(raw: Any, *, now: Callable[[], datetime] = _utcnow) -> Reading:
    if not isinstance(raw, Mapping):
        return Reading(
            device_id=None,
            timestamp=now(),
            metrics={name: None for name in METRIC_FIELDS},
        )

    timestamp = parse_timestamp(raw.get("ts"))
    if timestamp is None:
        timestamp = now()

    return Reading(
        device_id=parse_device_id(raw.get("deviceId")),
        timestamp=timestamp,
        metrics={name: parse_metric(raw.get(name)) for name in METRIC_FIELDS},
    )
