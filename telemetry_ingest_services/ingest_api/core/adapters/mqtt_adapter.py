"""Adaptador de contrato MQTT → Dominio.

Formato esperado (claves case-insensitive):
{
    "DeviceId": "Device-1",
    "Temperature": 21.5,
    "Humidity": 48.0,
    "Timestamp": "2026-01-31T08:00:00.123+02:00"
}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.reading import ReadingCandidate
from ...errors import ParseError

logger = logging.getLogger(__name__)

# Fecha y hora calendario; pydantic aceptaría también epoch en texto ("1769846400")
ISO_8601_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}")


class SensorReadingPayload(BaseModel):
    """Schema de tipos para el payload (los rangos los valida ReadingValidator)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    device_id: Optional[str] = Field(default=None, alias="deviceid", strict=True)
    temperature: float = Field(..., alias="temperature", strict=True)
    humidity: float = Field(..., alias="humidity", strict=True)
    timestamp: datetime = Field(..., alias="timestamp")

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_must_be_iso_string(cls, v):
        if not isinstance(v, str) or not ISO_8601_PREFIX.match(v):
            raise ValueError("Timestamp must be an ISO-8601 string")
        return v

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_have_offset(cls, v: datetime):
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("Timestamp must include a UTC offset")
        return v

    def to_candidate(self) -> ReadingCandidate:
        return ReadingCandidate(
            device_id=self.device_id or "",
            temperature=self.temperature,
            humidity=self.humidity,
            timestamp=self.timestamp,
        )


@dataclass
class ParseResult:
    """Resultado de parseo."""

    ok: bool
    candidate: Optional[ReadingCandidate] = None
    error: Optional[str] = None

    def unwrap(self) -> ReadingCandidate:
        """Retorna el candidato o lanza ParseError."""
        if not self.ok or self.candidate is None:
            raise ParseError(self.error or "unparseable payload")
        return self.candidate


def _format_pydantic_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Claves en minúsculas para matching case-insensitive."""
    return {str(k).lower(): v for k, v in data.items()}


def parse_payload(payload: bytes) -> ParseResult:
    """Parsea un payload MQTT crudo a ReadingCandidate.

    Nunca lanza excepción: cualquier malformación se devuelve como
    ParseResult(ok=False, error=...).
    """
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        return ParseResult(ok=False, error=f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        return ParseResult(
            ok=False,
            error=f"Payload must be a JSON object, got {type(data).__name__}",
        )

    try:
        model = SensorReadingPayload.model_validate(normalize_keys(data))
    except ValidationError as e:
        return ParseResult(ok=False, error=_format_pydantic_error(e))

    return ParseResult(ok=True, candidate=model.to_candidate())
