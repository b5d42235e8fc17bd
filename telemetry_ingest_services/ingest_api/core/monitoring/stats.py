"""Estadísticas de procesamiento."""

from __future__ import annotations

import threading
from datetime import datetime, timezone


class Stats:
    """Estadísticas de procesamiento de mensajes (thread-safe)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.received = 0
        self.persisted = 0
        self.parse_errors = 0
        self.validation_errors = 0
        self.persistence_errors = 0
        self.last_message_at: float = 0
        self.started_at = datetime.now(timezone.utc)

    def record_received(self, at: float) -> None:
        with self._lock:
            self.received += 1
            self.last_message_at = at

    def incr(self, name: str) -> int:
        with self._lock:
            value = getattr(self, name) + 1
            setattr(self, name, value)
            return value

    @property
    def failed(self) -> int:
        return self.parse_errors + self.validation_errors + self.persistence_errors

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} persisted={self.persisted} "
            f"parse_errors={self.parse_errors} validation_errors={self.validation_errors} "
            f"persistence_errors={self.persistence_errors}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        with self._lock:
            return {
                "received": self.received,
                "persisted": self.persisted,
                "parse_errors": self.parse_errors,
                "validation_errors": self.validation_errors,
                "persistence_errors": self.persistence_errors,
                "last_message_at": self.last_message_at,
                "started_at": self.started_at.isoformat(),
                "success_rate": self._success_rate(),
            }

    def _success_rate(self) -> float:
        total = self.persisted + self.failed
        if total == 0:
            return 1.0
        return self.persisted / total
