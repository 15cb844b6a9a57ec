from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from meteo.core.errors import StoreUnavailableError
from meteo.models.reading import (
    METRIC_FIELDS,
    DeviceId,
    Reading,
    SeriesSet,
    TimePoint,
    empty_series_set,
    to_epoch_ms,
)
from meteo.repositories.flux import flux_any_of, flux_minutes, flux_str

logger = logging.getLogger(__name__)

DEVICE_TAG = "deviceId"


class InfluxReadingRepository:
    def __init__(
        self,
        *,
        client: InfluxDBClient,
        org: str,
        bucket: str,
        measurement: str,
    ) -> None:
        self._client = client
        self._org = org
        self._bucket = bucket
        self._measurement = measurement
        self._write_api = client.write_api(write_options=SYNCHRONOUS)

    def ping(self) -> None:
        if not self._client.ping():
            raise StoreUnavailableError("InfluxDB did not answer ping")

    def write_reading(self, reading: Reading) -> None:
        if reading.device_id is None:
            logger.warning(
                "reading without device id not persisted", extra={"reason": "no_device_id"}
            )
            return

        fields = reading.present()
        if not fields:
            return

        timestamp = reading.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        point = Point(self._measurement).tag(DEVICE_TAG, str(reading.device_id))
        for metric, value in fields.items():
            point = point.field(metric, float(value))
        point = point.time(timestamp, WritePrecision.MS)

        self._write_api.write(bucket=self._bucket, org=self._org, record=point)

    def build_query(self, *, range_minutes: int, device_id: DeviceId | None = None) -> str:
        device_filter = ""
        if device_id is not None and str(device_id):
            device_filter = (
                f"\n  |> filter(fn: (r) => r[{flux_str(DEVICE_TAG)}] == {flux_str(str(device_id))})"
            )
        return f"""
from(bucket: {flux_str(self._bucket)})
  |> range(start: {flux_minutes(range_minutes)})
  |> filter(fn: (r) => r["_measurement"] == {flux_str(self._measurement)}){device_filter}
  |> filter(fn: (r) => {flux_any_of("_field", METRIC_FIELDS)})
  |> keep(columns: ["_time", "_value", "_field"])
  |> group()
  |> sort(columns: ["_time"])
"""

    def query_series(
        self, *, range_minutes: int, device_id: DeviceId | None = None
    ) -> SeriesSet:
        query = self.build_query(range_minutes=range_minutes, device_id=device_id)
        tables = self._client.query_api().query(query=query, org=self._org)

        series = empty_series_set()
        for table in tables:
            for record in table.records:
                point = _to_time_point(record.values)
                if point is None:
                    continue
                field, tp = point
                series[field].append(tp)

        for points in series.values():
            points.sort(key=lambda p: p.ts)
        return series


def _to_time_point(values: dict[str, Any]) -> tuple[str, TimePoint] | None:
    field = values.get("_field")
    if field not in METRIC_FIELDS:
        return None

    ts = _time_or_none(values.get("_time"))
    if ts is None:
        return None

    try:
        value = float(values.get("_value"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None

    return field, TimePoint(ts=to_epoch_ms(ts), value=value)


def _time_or_none(v: Any) -> datetime | None:
    if isinstance(v, datetime):
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)
    if isinstance(v, str):
        try:
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
    return None
