"""Handler de mensajes MQTT: parseo → validación → persistencia.

Cada etapa devuelve un resultado explícito; la decisión de descartar un
mensaje y el motivo registrado son función directa del input. Un mensaje
descartado solo es observable por logs/métricas y por la ausencia de la fila.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..adapters.mqtt_adapter import parse_payload
from ..domain.reading import Reading
from ..monitoring.stats import Stats
from ..validation.reading_validator import ReadingValidator
from ...errors import ParseError, PersistenceError
from ...infrastructure.persistence.reading_store import ReadingStore
from ... import metrics

logger = logging.getLogger(__name__)


class IngestStatus(str, Enum):
    PERSISTED = "persisted"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass
class IngestOutcome:
    """Resultado del procesamiento de un mensaje."""

    status: IngestStatus
    reading: Optional[Reading] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def persisted(self) -> bool:
        return self.status is IngestStatus.PERSISTED

    @property
    def reading_id(self) -> Optional[int]:
        return self.reading.id if self.reading is not None else None


class MessageHandler:
    """Maneja mensajes MQTT y los persiste.

    Responsabilidades:
    - Parseo de JSON (case-insensitive)
    - Validación de rangos físicos y temporales
    - Inserción en el store
    - Tracking de estadísticas

    Es seguro invocar `handle` concurrentemente: no hay estado mutable
    compartido salvo las estadísticas (protegidas por lock) y cada inserción
    usa su propia transacción.
    """

    def __init__(
        self,
        store: ReadingStore,
        validator: Optional[ReadingValidator] = None,
    ):
        self._store = store
        self._validator = validator or ReadingValidator()
        self._stats = Stats()

    def handle(self, topic: str, payload: bytes) -> IngestOutcome:
        """Procesa un mensaje MQTT."""
        start_time = time.perf_counter()
        self._stats.record_received(time.time())
        metrics.MQTT_MESSAGES_RECEIVED.inc()
        logger.info("[HANDLER] Received topic=%s bytes=%d", topic, len(payload))

        try:
            outcome = self._process(topic, payload)
        finally:
            metrics.MQTT_PROCESSING_LATENCY.observe(time.perf_counter() - start_time)

        if outcome.persisted:
            metrics.READINGS_PERSISTED.inc()
        else:
            metrics.MQTT_MESSAGES_DROPPED.labels(reason=outcome.status.value).inc()

        received = self._stats.received
        if received % 100 == 0:
            logger.info("[HANDLER] %s", self._stats)
        return outcome

    def _process(self, topic: str, payload: bytes) -> IngestOutcome:
        # 1. Parsear JSON
        try:
            candidate = parse_payload(payload).unwrap()
        except ParseError as e:
            self._stats.incr("parse_errors")
            logger.warning("[HANDLER] Dropped parse_error topic=%s reason=%s", topic, e)
            return IngestOutcome(IngestStatus.PARSE_ERROR, reasons=[str(e)])

        # 2. Validar
        validation = self._validator.validate(candidate)
        if not validation.valid:
            self._stats.incr("validation_errors")
            reasons = [str(e) for e in validation.errors]
            logger.warning(
                "[HANDLER] Dropped validation_error topic=%s device_id=%s reasons=%s",
                topic,
                candidate.device_id,
                "; ".join(reasons),
            )
            return IngestOutcome(IngestStatus.VALIDATION_ERROR, reasons=reasons)

        # 3. Persistir
        reading = validation.reading
        try:
            reading_id = self._store.insert(reading)
        except PersistenceError as e:
            self._stats.incr("persistence_errors")
            logger.error(
                "[HANDLER] Dropped persistence_error topic=%s device_id=%s err=%s",
                topic,
                reading.device_id,
                e,
            )
            return IngestOutcome(IngestStatus.PERSISTENCE_ERROR, reasons=[str(e)])

        saved = reading.with_id(reading_id)
        self._stats.incr("persisted")
        logger.info(
            "[HANDLER] Saved id=%d device_id=%s temperature=%.2f humidity=%.2f timestamp=%s",
            saved.id,
            saved.device_id,
            saved.temperature,
            saved.humidity,
            saved.timestamp.isoformat(),
        )
        return IngestOutcome(IngestStatus.PERSISTED, reading=saved)

    @property
    def stats(self) -> Stats:
        return self._stats
