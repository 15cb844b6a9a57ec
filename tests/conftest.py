from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from meteo.core.config import Settings
from meteo.factory import create_app
from tests.fakes import FakeReadingRepository


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        env="test",
        debug=True,
        docs_enabled=False,
        log_level="DEBUG",
        cors_origins=["http://localhost"],
        trusted_hosts=["testserver", "localhost"],
        influx_url="http://example.com:8086",
        influx_token="",
        influx_org="test",
        influx_bucket="test",
        influx_measurement="reading",
        mqtt_enabled=False,
        history_max_minutes=720,
        live_retention_seconds=600,
    )


@pytest.fixture()
def repo() -> FakeReadingRepository:
    return FakeReadingRepository()


@pytest.fixture()
def client(settings: Settings, repo: FakeReadingRepository) -> TestClient:
    app = create_app(settings, repository=repo)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def now() -> datetime:
    return datetime.now(tz=timezone.utc)
