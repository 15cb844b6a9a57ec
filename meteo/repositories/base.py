from __future__ import annotations

from typing import Protocol

from meteo.models.reading import DeviceId, Reading, SeriesSet


class ReadingRepository(Protocol):
    """Durable write and bounded range read for device readings.

    ``query_series`` returns every recognized metric as a key, each list sorted
    ascending by timestamp and holding only finite values.
    """

    def ping(self) -> None: ...

    def write_reading(self, reading: Reading) -> None: ...

    def query_series(
        self, *, range_minutes: int, device_id: DeviceId | None = None
    ) -> SeriesSet: ...
