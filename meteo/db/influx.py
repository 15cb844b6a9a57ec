from __future__ import annotations

import logging

from influxdb_client import InfluxDBClient

from meteo.core.config import Settings
from meteo.repositories.base import ReadingRepository
from meteo.repositories.disabled import DisabledReadingRepository
from meteo.repositories.influx import InfluxReadingRepository

logger = logging.getLogger(__name__)


def create_influx_client(settings: Settings) -> InfluxDBClient | None:
    if not settings.store_enabled:
        logger.warning("no InfluxDB token configured, store I/O is disabled")
        return None
    return InfluxDBClient(
        url=str(settings.influx_url),
        token=settings.influx_token,
        org=settings.influx_org,
        timeout=settings.influx_timeout_ms,
    )


def create_reading_repository(
    settings: Settings, client: InfluxDBClient | None
) -> ReadingRepository:
    if client is None:
        return DisabledReadingRepository()
    logger.info(
        "InfluxDB write/query API initialized (bucket=%s, measurement=%s)",
        settings.influx_bucket,
        settings.influx_measurement,
    )
    return InfluxReadingRepository(
        client=client,
        org=settings.influx_org,
        bucket=settings.influx_bucket,
        measurement=settings.influx_measurement,
    )
