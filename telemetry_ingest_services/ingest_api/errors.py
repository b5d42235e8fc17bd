"""Taxonomía de errores del pipeline de ingesta y retención.

Ningún error originado en un mensaje individual o en un ciclo de retención
debe terminar el proceso: se registran en log y el flujo continúa. Solo los
fallos de arranque (BD / broker) se reportan al orquestador.
"""

from __future__ import annotations


class TelemetryIngestError(Exception):
    """Base de todos los errores del servicio."""


class TransportError(TelemetryIngestError):
    """Fallo de conexión/suscripción con el broker MQTT."""


class ParseError(TelemetryIngestError):
    """Payload malformado (no es JSON, no es objeto, tipos inválidos)."""


class PersistenceError(TelemetryIngestError):
    """Store no disponible o fallo de escritura/lectura."""


class RetentionError(TelemetryIngestError):
    """Fallo de un ciclo de limpieza por antigüedad."""


class InvalidQueryError(TelemetryIngestError, ValueError):
    """Argumentos de consulta inválidos (contrato del llamador, no del store)."""
