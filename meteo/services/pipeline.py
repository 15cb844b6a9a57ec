"""Routes inbound transport messages to the store and to live subscribers.

Persistence and live publish are issued as two independent tasks from the
same call. Neither waits for the other and each logs its own failure, so a
store outage never hides a reading from live viewers and a dead viewer never
costs a write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from meteo.models.reading import Reading
from meteo.repositories.base import ReadingRepository
from meteo.services.fanout import LiveBroadcaster
from meteo.services.normalizer import normalize, parse_device_id
from meteo.services.recent import RecentReadingsBuffer

logger = logging.getLogger(__name__)


@dataclass
class IngestStats:
    received: int = 0
    malformed: int = 0
    persisted: int = 0
    persist_failed: int = 0
    persist_dropped: int = 0
    published: int = 0


def device_from_topic(topic: str | None) -> str | None:
    """``meteo/<deviceId>/reading`` -> ``<deviceId>``."""
    if not topic:
        return None
    parts = topic.split("/")
    if len(parts) < 3 or not parts[1]:
        return None
    return parts[1]


class IngestionPipeline:
    def __init__(
        self,
        *,
        repo: ReadingRepository,
        broadcaster: LiveBroadcaster,
        recent: RecentReadingsBuffer | None = None,
        max_pending_writes: int = 256,
    ) -> None:
        self._repo = repo
        self._broadcaster = broadcaster
        self._recent = recent
        self._max_pending_writes = max(int(max_pending_writes), 1)
        self._pending_writes = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self.stats = IngestStats()

    def on_message(self, payload: bytes, topic: str | None = None) -> Reading | None:
        """Handle one transport message. Must be called on the event loop thread."""
        self.stats.received += 1
        raw = self._decode(payload, topic)
        if raw is None:
            self.stats.malformed += 1
            return None

        reading = normalize(raw)
        if reading.device_id is None:
            fallback = parse_device_id(device_from_topic(topic))
            if fallback is not None:
                reading = Reading(
                    device_id=fallback,
                    timestamp=reading.timestamp,
                    metrics=reading.metrics,
                )

        if self._recent is not None:
            self._recent.add(reading)

        self._persist_or_drop(reading)
        self._spawn(self._publish(reading))
        return reading

    async def drain(self) -> None:
        """Wait for every in-flight persist/publish task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    def _decode(payload: bytes, topic: str | None) -> dict[str, Any] | None:
        try:
            raw = json.loads(payload)
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            logger.warning("failed to decode message: %s", e, extra={"topic": topic})
            return None
        if not isinstance(raw, dict):
            logger.warning(
                "message is not a JSON object", extra={"topic": topic, "reason": type(raw).__name__}
            )
            return None
        return raw

    def _persist_or_drop(self, reading: Reading) -> None:
        if self._pending_writes >= self._max_pending_writes:
            self.stats.persist_dropped += 1
            logger.warning(
                "store saturated, dropping write",
                extra={"device_id": reading.device_id, "reason": "pending_writes"},
            )
            return
        self._pending_writes += 1
        self._spawn(self._persist(reading))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, reading: Reading) -> None:
        try:
            await asyncio.to_thread(self._repo.write_reading, reading)
        except Exception as e:  # noqa: BLE001 - store failures never reach the transport
            self.stats.persist_failed += 1
            logger.error(
                "failed to persist reading: %s", e, extra={"device_id": reading.device_id}
            )
        else:
            self.stats.persisted += 1
        finally:
            self._pending_writes -= 1

    async def _publish(self, reading: Reading) -> None:
        try:
            delivered = await self._broadcaster.publish(reading)
        except Exception as e:  # noqa: BLE001
            logger.error("live publish failed: %s", e, extra={"device_id": reading.device_id})
            return
        self.stats.published += delivered
