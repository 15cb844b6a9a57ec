from __future__ import annotations

import logging

from meteo.core.errors import StoreUnavailableError
from meteo.models.reading import DeviceId, Reading, SeriesSet, empty_series_set

logger = logging.getLogger(__name__)


class DisabledReadingRepository:
    """Stands in for the store when no InfluxDB credentials are configured."""

    def ping(self) -> None:
        raise StoreUnavailableError("InfluxDB is not configured")

    def write_reading(self, reading: Reading) -> None:
        return None

    def query_series(
        self, *, range_minutes: int, device_id: DeviceId | None = None
    ) -> SeriesSet:
        logger.debug(
            "store disabled, returning empty history", extra={"range_minutes": range_minutes}
        )
        return empty_series_set()
