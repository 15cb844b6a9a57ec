from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from meteo.api.deps import get_broadcaster, get_pipeline, get_reading_repository
from meteo.repositories.base import ReadingRepository
from meteo.schemas.readings import IngestStatsResponse
from meteo.services.fanout import LiveBroadcaster
from meteo.services.pipeline import IngestionPipeline

router = APIRouter()


@router.get("/ingest/stats", response_model=IngestStatsResponse)
def ingest_stats(
    pipeline: Annotated[IngestionPipeline, Depends(get_pipeline)],
    broadcaster: Annotated[LiveBroadcaster, Depends(get_broadcaster)],
) -> IngestStatsResponse:
    return IngestStatsResponse(**asdict(pipeline.stats), subscribers=len(broadcaster))


@router.get("/store/health", tags=["meta"])
def store_health(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> dict[str, str]:
    try:
        repo.ping()
    except Exception as e:  # noqa: BLE001 - expose as 503 without leaking internals
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="InfluxDB unavailable",
        ) from e
    return {"status": "ok"}
