"""Definición de la tabla SensorReadings.

Timestamp se guarda normalizado a UTC para que el orden y la comparación
con el cutoff de retención sean correctos aunque los dispositivos publiquen
con offsets distintos.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)


class UtcDateTime(TypeDecorator):
    """DateTime aware: guarda UTC naive, devuelve UTC aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise TypeError(f"expected datetime, got {type(value).__name__}")
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


metadata = MetaData()

sensor_readings = Table(
    "SensorReadings",
    metadata,
    Column("Id", Integer, primary_key=True, autoincrement=True),
    Column("DeviceId", String(50), nullable=False),
    Column("Temperature", Float, nullable=False),
    Column("Humidity", Float, nullable=False),
    Column("Timestamp", UtcDateTime(), nullable=False),
    Index("IX_SensorReadings_Timestamp", "Timestamp"),
    Index("IX_SensorReadings_DeviceId_Timestamp", "DeviceId", "Timestamp"),
    # Ids nunca se reutilizan, ni tras un borrado de retención
    sqlite_autoincrement=True,
)


def ensure_schema(engine: Engine) -> None:
    """Crea la tabla e índices si no existen. Seguro de llamar múltiples veces."""
    logger.info("[DB] Ensuring schema exists (table=%s)", sensor_readings.name)
    metadata.create_all(engine, checkfirst=True)
