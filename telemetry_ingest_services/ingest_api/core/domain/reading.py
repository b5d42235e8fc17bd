"""Modelo de dominio para lecturas de sensores."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ReadingCandidate:
    """Lectura parseada desde el payload, todavía sin validar."""

    device_id: str
    temperature: float
    humidity: float
    timestamp: datetime


@dataclass(frozen=True)
class Reading:
    """Lectura de sensor validada - modelo canónico de dominio.

    Este es el contrato único que fluye por el pipeline:
    MQTT → Parseo → Validación → SensorReadings

    `id` lo asigna el store al insertar; es None mientras la lectura no
    está persistida.
    """

    device_id: str
    temperature: float
    humidity: float
    timestamp: datetime
    id: Optional[int] = None

    @classmethod
    def from_candidate(cls, candidate: ReadingCandidate) -> "Reading":
        return cls(
            device_id=candidate.device_id,
            temperature=float(candidate.temperature),
            humidity=float(candidate.humidity),
            timestamp=candidate.timestamp,
        )

    def with_id(self, reading_id: int) -> "Reading":
        return replace(self, id=reading_id)

    def to_row(self) -> dict:
        """Convierte a parámetros de la tabla SensorReadings (sin Id)."""
        return {
            "DeviceId": self.device_id,
            "Temperature": float(self.temperature),
            "Humidity": float(self.humidity),
            "Timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ReadingStatistics:
    """Agregados sobre todas las lecturas persistidas."""

    count: int
    avg_temperature: float
    avg_humidity: float
    min_temperature: float
    max_temperature: float
    min_humidity: float
    max_humidity: float

    @classmethod
    def empty(cls) -> "ReadingStatistics":
        return cls(
            count=0,
            avg_temperature=0.0,
            avg_humidity=0.0,
            min_temperature=0.0,
            max_temperature=0.0,
            min_humidity=0.0,
            max_humidity=0.0,
        )

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "avg_temperature": self.avg_temperature,
            "avg_humidity": self.avg_humidity,
            "min_temperature": self.min_temperature,
            "max_temperature": self.max_temperature,
            "min_humidity": self.min_humidity,
            "max_humidity": self.max_humidity,
        }
