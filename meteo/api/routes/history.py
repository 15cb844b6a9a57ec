from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any, Awaitable, TypeVar

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse

from meteo.api.deps import get_history_service, get_settings
from meteo.core.config import Settings
from meteo.core.errors import InvalidRangeError
from meteo.schemas.readings import (
    ErrorResponse,
    HistoryProbeResponse,
    HistoryResponse,
    HistoryStatsResponse,
    point_out,
    points_out,
    stats_out,
)
from meteo.services.history import HistoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/history")

T = TypeVar("T")

CLIENT_CLOSED_REQUEST = 499
DISCONNECT_POLL_SECONDS = 0.25

MinutesParam = Annotated[str | None, Query(alias="minutes")]
DeviceParam = Annotated[str | None, Query(alias="deviceId", max_length=128)]


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def run_unless_disconnected(request: Request, work: Awaitable[T]) -> T | None:
    """Await ``work``; cancel it and return None if the client goes away first."""
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()

    if task not in done:
        logger.info("client disconnected, history query cancelled")
        return None
    return task.result()


def _invalid(e: InvalidRangeError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error=e.message).model_dump(),
    )


def _minutes(minutes: str | None, settings: Settings) -> Any:
    return minutes if minutes is not None else settings.history_default_minutes


@router.get(
    "",
    response_model=HistoryResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_history(
    request: Request,
    service: Annotated[HistoryService, Depends(get_history_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    minutes: MinutesParam = None,
    device_id: DeviceParam = None,
    max_points: Annotated[int | None, Query(alias="maxPoints", ge=1, le=10_000)] = None,
):
    try:
        service.resolve_range(_minutes(minutes, settings))
    except InvalidRangeError as e:
        return _invalid(e)

    result = await run_unless_disconnected(
        request,
        service.get_history(
            _minutes(minutes, settings),
            device_id,
            max_points=max_points or settings.history_default_max_points,
        ),
    )
    if result is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    return HistoryResponse(
        range_minutes=result.range_minutes,
        device_id=result.device_id,
        points=points_out(result.series),
    )


@router.get(
    "/stats",
    response_model=HistoryStatsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_history_stats(
    request: Request,
    service: Annotated[HistoryService, Depends(get_history_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    minutes: MinutesParam = None,
    device_id: DeviceParam = None,
):
    try:
        service.resolve_range(_minutes(minutes, settings))
    except InvalidRangeError as e:
        return _invalid(e)

    outcome = await run_unless_disconnected(
        request, service.get_stats(_minutes(minutes, settings), device_id)
    )
    if outcome is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    result, stats = outcome
    return HistoryStatsResponse(
        range_minutes=result.range_minutes,
        device_id=result.device_id,
        stats={metric: stats_out(s) for metric, s in stats.items()},
    )


@router.get(
    "/probe",
    response_model=HistoryProbeResponse,
    responses={400: {"model": ErrorResponse}},
)
async def probe_history(
    request: Request,
    service: Annotated[HistoryService, Depends(get_history_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    ts: Annotated[float, Query(description="Target time, unix epoch milliseconds")],
    minutes: MinutesParam = None,
    device_id: DeviceParam = None,
):
    try:
        service.resolve_range(_minutes(minutes, settings))
    except InvalidRangeError as e:
        return _invalid(e)

    outcome = await run_unless_disconnected(
        request, service.probe(_minutes(minutes, settings), ts, device_id)
    )
    if outcome is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    result, closest = outcome
    return HistoryProbeResponse(
        range_minutes=result.range_minutes,
        device_id=result.device_id,
        ts=ts,
        values={metric: point_out(p) for metric, p in closest.items()},
    )
