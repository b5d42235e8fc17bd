from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import pytest

from telemetry_ingest_services.common.db import build_engine
from telemetry_ingest_services.ingest_api.core.domain.reading import Reading
from telemetry_ingest_services.ingest_api.infrastructure.persistence.reading_store import ReadingStore

FIXED_NOW = datetime(2026, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def engine(tmp_path):
    """SQLite en archivo temporal (compartible entre threads)."""
    eng = build_engine(f"sqlite:///{tmp_path / 'telemetry_test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> ReadingStore:
    s = ReadingStore(engine)
    s.ensure_schema()
    return s


@pytest.fixture
def make_reading() -> Callable[..., Reading]:
    def _make(
        device_id: str = "Device-1",
        temperature: float = 21.5,
        humidity: float = 48.0,
        timestamp: datetime = FIXED_NOW,
    ) -> Reading:
        return Reading(
            device_id=device_id,
            temperature=temperature,
            humidity=humidity,
            timestamp=timestamp,
        )

    return _make


@pytest.fixture
def valid_payload() -> Dict[str, Any]:
    """Payload MQTT válido (mismo formato que publica el dispositivo)."""
    return {
        "DeviceId": "Device-1",
        "Temperature": 21.5,
        "Humidity": 48.0,
        "Timestamp": (FIXED_NOW - timedelta(seconds=30)).isoformat(),
    }
