from __future__ import annotations

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        case_sensitive=False,
    )

    env: str = Field(default="development")
    debug: bool = Field(default=False)
    docs_enabled: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=lambda: ["localhost", "127.0.0.1"])

    influx_url: AnyHttpUrl = Field(default="http://influxdb:8086")
    # Empty token disables store I/O: writes become no-ops, queries return empty series.
    influx_token: str = Field(default="")
    influx_org: str = Field(default="meteo", min_length=1)
    influx_bucket: str = Field(default="meteo", min_length=1)
    influx_measurement: str = Field(default="reading", min_length=1, max_length=64)
    influx_timeout_ms: int = Field(default=10_000, ge=1000, le=120_000)

    mqtt_enabled: bool = Field(default=True)
    mqtt_url: str = Field(default="mqtt://mosquitto:1883")
    mqtt_username: str | None = Field(default=None)
    mqtt_password: str | None = Field(default=None)
    mqtt_topic: str = Field(default="meteo/+/reading", min_length=1)
    mqtt_client_id_prefix: str = Field(default="meteo-backend", min_length=1, max_length=32)

    history_default_minutes: int = Field(default=15, ge=1)
    history_max_minutes: int = Field(default=12 * 60, ge=1, le=60 * 24 * 30)
    history_default_max_points: int | None = Field(default=None, ge=1, le=10_000)

    live_retention_seconds: int = Field(default=15 * 60, ge=1, le=60 * 60 * 24)
    live_buffer_max_points: int = Field(default=1000, ge=1, le=100_000)
    live_buffer_max_devices: int = Field(default=1024, ge=1, le=100_000)
    ingest_max_pending_writes: int = Field(default=256, ge=1, le=100_000)

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def store_enabled(self) -> bool:
        return bool(self.influx_token.strip())


def load_settings() -> Settings:
    settings = Settings()
    if not settings.cors_origins:
        settings.cors_origins = ["http://localhost:5173"]
    return settings
