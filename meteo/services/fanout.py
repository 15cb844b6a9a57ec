"""Live fan-out of readings to connected viewers.

The broadcaster owns the subscriber set. All mutation happens on the event
loop thread (subscribe on connect, unsubscribe on disconnect or on the first
failed delivery), so the set needs no lock.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Protocol

from starlette.websockets import WebSocket, WebSocketState

from meteo.models.reading import Reading
from meteo.schemas.readings import LiveReading

logger = logging.getLogger(__name__)


class LiveSink(Protocol):
    @property
    def is_ready(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class WebSocketSink:
    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def is_ready(self) -> bool:
        return (
            self._websocket.application_state == WebSocketState.CONNECTED
            and self._websocket.client_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)


_ids = itertools.count(1)


class LiveSubscriber:
    """Handle for one connected viewer."""

    def __init__(self, sink: LiveSink) -> None:
        self.id = next(_ids)
        self._sink = sink
        # FIFO lock keeps per-subscriber publish order across overlapping publishes.
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._sink.is_ready

    async def deliver(self, data: str) -> None:
        async with self._lock:
            await self._sink.send_text(data)

    def __repr__(self) -> str:
        return f"LiveSubscriber(id={self.id})"


class LiveBroadcaster:
    def __init__(self) -> None:
        self._subscribers: set[LiveSubscriber] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    def subscribe(self, sink: LiveSink) -> LiveSubscriber:
        subscriber = LiveSubscriber(sink)
        self._subscribers.add(subscriber)
        logger.info("live subscriber connected", extra={"subscriber": subscriber.id})
        return subscriber

    def unsubscribe(self, subscriber: LiveSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info("live subscriber disconnected", extra={"subscriber": subscriber.id})

    async def publish(self, reading: Reading) -> int:
        """Deliver ``reading`` to every ready subscriber; returns the delivered count."""
        return await self.publish_text(LiveReading.from_reading(reading).to_json())

    async def publish_text(self, data: str) -> int:
        targets = [s for s in self._subscribers if s.is_ready]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(s.deliver(data) for s in targets), return_exceptions=True
        )

        delivered = 0
        for subscriber, result in zip(targets, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "live delivery failed, dropping subscriber: %s",
                    result,
                    extra={"subscriber": subscriber.id},
                )
                self._subscribers.discard(subscriber)
            else:
                delivered += 1
        return delivered
