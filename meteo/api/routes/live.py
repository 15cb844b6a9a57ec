from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket

from meteo.api.deps import get_broadcaster, get_recent_buffer
from meteo.schemas.readings import RecentResponse, points_out
from meteo.services.fanout import LiveBroadcaster, WebSocketSink
from meteo.services.recent import RecentReadingsBuffer

router = APIRouter(prefix="/live")
ws_router = APIRouter()


@router.get("/recent", response_model=RecentResponse)
def recent_readings(
    buffer: Annotated[RecentReadingsBuffer, Depends(get_recent_buffer)],
    device_id: Annotated[str | None, Query(alias="deviceId", max_length=128)] = None,
) -> RecentResponse:
    return RecentResponse(
        window_seconds=buffer.window_seconds,
        device_id=device_id,
        points=points_out(buffer.series(device_id=device_id or None)),
    )


@ws_router.websocket("/ws")
async def live_feed(
    websocket: WebSocket,
    broadcaster: Annotated[LiveBroadcaster, Depends(get_broadcaster)],
) -> None:
    # Registered before the handshake completes; delivery waits for the ready state.
    subscriber = broadcaster.subscribe(WebSocketSink(websocket))
    try:
        await websocket.accept()
        # Client frames (text or binary) are ignored; the loop only observes the close.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        broadcaster.unsubscribe(subscriber)
