from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from meteo.api.router import api_router, ws_router
from meteo.clients.mqtt import MqttTransport
from meteo.core.config import Settings, load_settings
from meteo.core.logging_config import configure_logging
from meteo.db.influx import create_influx_client, create_reading_repository
from meteo.repositories.base import ReadingRepository
from meteo.services.fanout import LiveBroadcaster
from meteo.services.pipeline import IngestionPipeline
from meteo.services.recent import RecentReadingsBuffer

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    repository: ReadingRepository | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        influx_client = None
        repo = repository
        if repo is None:
            influx_client = create_influx_client(settings)
            repo = create_reading_repository(settings, influx_client)

        broadcaster = LiveBroadcaster()
        recent = RecentReadingsBuffer(
            window_seconds=settings.live_retention_seconds,
            max_points=settings.live_buffer_max_points,
            max_devices=settings.live_buffer_max_devices,
        )
        pipeline = IngestionPipeline(
            repo=repo,
            broadcaster=broadcaster,
            recent=recent,
            max_pending_writes=settings.ingest_max_pending_writes,
        )

        app.state.settings = settings
        app.state.reading_repository = repo
        app.state.broadcaster = broadcaster
        app.state.recent_buffer = recent
        app.state.pipeline = pipeline

        transport: MqttTransport | None = None
        if settings.mqtt_enabled:
            transport = MqttTransport(
                url=settings.mqtt_url,
                topic=settings.mqtt_topic,
                handler=pipeline.on_message,
                loop=asyncio.get_running_loop(),
                username=settings.mqtt_username,
                password=settings.mqtt_password,
                client_id_prefix=settings.mqtt_client_id_prefix,
            )
            transport.start()
        else:
            logger.info("MQTT ingestion disabled")

        yield

        if transport is not None:
            transport.stop()
        await pipeline.drain()
        if influx_client is not None:
            influx_client.close()

    docs_enabled = settings.docs_enabled and not settings.is_production
    app = FastAPI(
        title="Meteo Telemetry API",
        version="0.1.0",
        debug=settings.debug,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    if settings.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if settings.is_production:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    @app.get("/", tags=["meta"])
    def root():
        return {"name": "meteo-telemetry", "status": "ok"}

    @app.get("/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    app.include_router(api_router)
    app.include_router(ws_router)
    return app
