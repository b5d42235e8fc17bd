"""Validador de lecturas de dominio.

Reglas (todas se evalúan, no hay corto-circuito):
- device_id vacío/espacios      → MISSING_DEVICE_ID
- device_id > 50 caracteres     → DEVICE_ID_TOO_LONG
- temperature fuera de rango    → TEMPERATURE_OUT_OF_RANGE
- humidity fuera de rango       → HUMIDITY_OUT_OF_RANGE
- timestamp > now + tolerancia  → TIMESTAMP_IN_FUTURE
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from ..domain.reading import Reading, ReadingCandidate

# Rangos físicos (inclusive)
TEMPERATURE_RANGE = (-273.15, 1000.0)
HUMIDITY_RANGE = (0.0, 100.0)
DEVICE_ID_MAX_LENGTH = 50
DEFAULT_FUTURE_TOLERANCE = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValidationErrorCode(str, Enum):
    MISSING_DEVICE_ID = "MissingDeviceId"
    DEVICE_ID_TOO_LONG = "DeviceIdTooLong"
    TEMPERATURE_OUT_OF_RANGE = "TemperatureOutOfRange"
    HUMIDITY_OUT_OF_RANGE = "HumidityOutOfRange"
    TIMESTAMP_IN_FUTURE = "TimestampInFuture"


@dataclass(frozen=True)
class ValidationIssue:
    code: ValidationErrorCode
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    reading: Optional[Reading] = None
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def codes(self) -> List[ValidationErrorCode]:
        return [e.code for e in self.errors]


def _as_aware(ts: datetime) -> datetime:
    # Timestamps sin offset se interpretan como UTC.
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def validate_reading(
    candidate: ReadingCandidate,
    now: Optional[datetime] = None,
    future_tolerance: timedelta = DEFAULT_FUTURE_TOLERANCE,
) -> ValidationResult:
    """Valida una lectura candidata.

    Args:
        candidate: Lectura parseada desde el payload
        now: Instante de ingesta (inyectable para tests); UTC actual si None
        future_tolerance: Tolerancia de reloj para timestamps en el futuro

    Returns:
        ValidationResult con la Reading validada o la lista completa de errores
    """
    now = _as_aware(now) if now is not None else utc_now()
    errors: List[ValidationIssue] = []

    device_id = candidate.device_id or ""
    if not device_id.strip():
        errors.append(ValidationIssue(
            ValidationErrorCode.MISSING_DEVICE_ID, "device_id", "DeviceId is required",
        ))
    elif len(device_id) > DEVICE_ID_MAX_LENGTH:
        errors.append(ValidationIssue(
            ValidationErrorCode.DEVICE_ID_TOO_LONG,
            "device_id",
            f"DeviceId must be {DEVICE_ID_MAX_LENGTH} characters or less (got {len(device_id)})",
        ))

    t_min, t_max = TEMPERATURE_RANGE
    if not (t_min <= candidate.temperature <= t_max):
        errors.append(ValidationIssue(
            ValidationErrorCode.TEMPERATURE_OUT_OF_RANGE,
            "temperature",
            f"Temperature {candidate.temperature} out of range [{t_min}, {t_max}] Celsius",
        ))

    h_min, h_max = HUMIDITY_RANGE
    if not (h_min <= candidate.humidity <= h_max):
        errors.append(ValidationIssue(
            ValidationErrorCode.HUMIDITY_OUT_OF_RANGE,
            "humidity",
            f"Humidity {candidate.humidity} out of range [{h_min}, {h_max}] percent",
        ))

    timestamp = _as_aware(candidate.timestamp)
    if timestamp > now + future_tolerance:
        errors.append(ValidationIssue(
            ValidationErrorCode.TIMESTAMP_IN_FUTURE,
            "timestamp",
            f"Timestamp {timestamp.isoformat()} is more than "
            f"{int(future_tolerance.total_seconds())}s ahead of ingestion time",
        ))

    if errors:
        return ValidationResult(valid=False, errors=errors)

    return ValidationResult(
        valid=True,
        reading=Reading.from_candidate(replace(candidate, timestamp=timestamp)),
    )


class ReadingValidator:
    """Valida lecturas con tolerancia y reloj configurables."""

    def __init__(
        self,
        future_tolerance: timedelta = DEFAULT_FUTURE_TOLERANCE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._future_tolerance = future_tolerance
        self._clock = clock

    @property
    def future_tolerance(self) -> timedelta:
        return self._future_tolerance

    def validate(self, candidate: ReadingCandidate) -> ValidationResult:
        return validate_reading(
            candidate,
            now=self._clock(),
            future_tolerance=self._future_tolerance,
        )
