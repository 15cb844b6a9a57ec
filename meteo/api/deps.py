from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from starlette.requests import HTTPConnection

from meteo.core.config import Settings
from meteo.repositories.base import ReadingRepository
from meteo.services.fanout import LiveBroadcaster
from meteo.services.history import HistoryService
from meteo.services.pipeline import IngestionPipeline
from meteo.services.recent import RecentReadingsBuffer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reading_repository(request: Request) -> ReadingRepository:
    return request.app.state.reading_repository


def get_broadcaster(conn: HTTPConnection) -> LiveBroadcaster:
    return conn.app.state.broadcaster


def get_recent_buffer(request: Request) -> RecentReadingsBuffer:
    return request.app.state.recent_buffer


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_history_service(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HistoryService:
    return HistoryService(repo=repo, max_minutes=settings.history_max_minutes)
