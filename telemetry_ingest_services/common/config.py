from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, default).split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_topic: str
    mqtt_client_id: str
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_qos: int
    mqtt_keepalive: int
    mqtt_connect_timeout_seconds: float

    mqtt_reconnect_enabled: bool
    mqtt_reconnect_max_attempts: int
    mqtt_reconnect_base_delay: float
    mqtt_reconnect_max_delay: float

    database_url: str

    retention_days: int
    retention_sweep_interval_seconds: float
    future_timestamp_tolerance_seconds: float

    ingest_num_workers: int
    ingest_queue_size: int

    api_cors_origins: Tuple[str, ...]

    @property
    def retention_window(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.retention_sweep_interval_seconds)

    @property
    def future_tolerance(self) -> timedelta:
        return timedelta(seconds=self.future_timestamp_tolerance_seconds)


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("IOT_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_topic=os.getenv("MQTT_TOPIC", "/sensors/data"),
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "telemetry-ingest"),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_qos=int(os.getenv("MQTT_QOS", "1")),
        mqtt_keepalive=int(os.getenv("MQTT_KEEPALIVE", "60")),
        mqtt_connect_timeout_seconds=float(os.getenv("MQTT_CONNECT_TIMEOUT_SECONDS", "5")),
        mqtt_reconnect_enabled=_env_bool("MQTT_RECONNECT_ENABLED"),
        mqtt_reconnect_max_attempts=int(os.getenv("MQTT_RECONNECT_MAX_ATTEMPTS", "10")),
        mqtt_reconnect_base_delay=float(os.getenv("MQTT_RECONNECT_BASE_DELAY", "1.0")),
        mqtt_reconnect_max_delay=float(os.getenv("MQTT_RECONNECT_MAX_DELAY", "60.0")),
        database_url=os.getenv("DATABASE_URL", "sqlite:///sensorreadings.db"),
        retention_days=int(os.getenv("RETENTION_DAYS", "30")),
        retention_sweep_interval_seconds=float(os.getenv("RETENTION_SWEEP_INTERVAL_SECONDS", "3600")),
        future_timestamp_tolerance_seconds=float(os.getenv("FUTURE_TIMESTAMP_TOLERANCE_SECONDS", "300")),
        ingest_num_workers=int(os.getenv("INGEST_NUM_WORKERS", "4")),
        ingest_queue_size=int(os.getenv("INGEST_QUEUE_SIZE", "1000")),
        api_cors_origins=_env_list(
            "API_CORS_ORIGINS",
            "https://localhost:3000,http://localhost:3000,http://localhost:5045",
        ),
    )
