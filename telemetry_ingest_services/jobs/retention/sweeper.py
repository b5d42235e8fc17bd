"""Sweeper de retención: borra lecturas más viejas que la ventana configurada.

Estados: IDLE → RUNNING → IDLE → … → STOPPED

Un ciclo fallido se registra y no impide el siguiente. La espera entre
ciclos es un `Event.wait(interval)`, así que stop() corta el loop sin
esperar el resto del intervalo.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ...ingest_api.errors import PersistenceError, RetentionError
from ...ingest_api.infrastructure.persistence.reading_store import ReadingStore
from ...ingest_api import metrics
from .config import RetentionConfig

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SweeperState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RetentionSweeper:
    """Tarea periódica de limpieza por antigüedad."""

    def __init__(
        self,
        store: ReadingStore,
        config: Optional[RetentionConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._config = config or RetentionConfig()
        self._clock = clock
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._state = SweeperState.IDLE

        self._cycles = 0
        self._failures = 0
        self._total_deleted = 0
        self._last_cutoff: Optional[datetime] = None

    @property
    def config(self) -> RetentionConfig:
        return self._config

    @property
    def state(self) -> SweeperState:
        return self._state

    def run_cycle(self) -> int:
        """Ejecuta un ciclo de limpieza.

        Returns:
            Cantidad de lecturas eliminadas

        Raises:
            RetentionError: si el store falla
        """
        with self._cycle_lock:
            if self._state is not SweeperState.STOPPED:
                self._state = SweeperState.RUNNING
            t0 = time.monotonic()
            cutoff = self._clock() - self._config.retention
            self._last_cutoff = cutoff
            try:
                deleted = self._store.delete_older_than(cutoff)
            except PersistenceError as e:
                self._failures += 1
                metrics.RETENTION_CYCLE_FAILURES.inc()
                raise RetentionError(f"retention cycle failed cutoff={cutoff.isoformat()}: {e}") from e
            finally:
                self._cycles += 1
                if self._state is SweeperState.RUNNING:
                    self._state = SweeperState.IDLE

            self._total_deleted += deleted
            metrics.RETENTION_READINGS_DELETED.inc(deleted)

        cycle_ms = (time.monotonic() - t0) * 1000
        if deleted > 0:
            logger.info(
                "[RETENTION] Cleaned up %d sensor readings older than %d days cutoff=%s ms=%.1f",
                deleted, self._config.retention.days, cutoff.isoformat(), cycle_ms,
            )
        else:
            logger.info(
                "[RETENTION] No old sensor readings to clean up cutoff=%s ms=%.1f",
                cutoff.isoformat(), cycle_ms,
            )
        return deleted

    def run_forever(self) -> None:
        """Loop periódico en el thread actual hasta stop()."""
        logger.info(
            "[RETENTION] Sweeper started retention_days=%d interval=%.0fs",
            self._config.retention.days,
            self._config.interval.total_seconds(),
        )
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except RetentionError as e:
                logger.error("[RETENTION] %s", e)
            except Exception:
                self._failures += 1
                metrics.RETENTION_CYCLE_FAILURES.inc()
                logger.exception("[RETENTION] Unexpected error during cleanup")

            if self._stop_event.wait(self._config.interval.total_seconds()):
                break

        self._state = SweeperState.STOPPED
        logger.info("[RETENTION] Sweeper stopped. %s", self.stats)

    def start(self) -> None:
        """Arranca el loop en un thread daemon."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._state = SweeperState.IDLE
        self._thread = threading.Thread(
            target=self.run_forever,
            daemon=True,
            name="retention-sweeper",
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Señaliza apagado y espera al thread (termina el ciclo en curso, si hay)."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._state = SweeperState.STOPPED

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "cycles": self._cycles,
            "failures": self._failures,
            "total_deleted": self._total_deleted,
            "last_cutoff": self._last_cutoff.isoformat() if self._last_cutoff else None,
        }
