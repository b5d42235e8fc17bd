"""Dispatcher de mensajes: desacopla el callback de paho de la persistencia.

El thread de red de paho solo encola (~0.01ms) y N workers ejecutan el
handler en paralelo. La cola acotada aplica backpressure bloqueando al
thread de red; nunca se descartan mensajes por cola llena.

stop() deja de aceptar entregas nuevas y drena el trabajo en curso antes
de retornar: ninguna inserción se aborta a mitad.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4

Handler = Callable[[str, bytes], object]


class MessageDispatcher:
    """Queue + ThreadPool para el handler de mensajes."""

    def __init__(
        self,
        handler: Handler,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self._handler = handler
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._num_workers = num_workers
        self._stop_event = threading.Event()
        self._accepting = False

        # Metrics
        self._enqueued = 0
        self._rejected = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()
        # submit() en curso que ya pasó el chequeo de aceptación
        self._submitting = 0
        self._submits_done = threading.Condition(self._lock)

        self._workers: list[threading.Thread] = []

    def start(self) -> None:
        """Start worker threads."""
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"ingest-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        with self._lock:
            self._accepting = True
        logger.info(
            "[DISPATCH] Started workers=%d queue_max=%d",
            self._num_workers, self._queue.maxsize,
        )

    def submit(self, topic: str, payload: bytes) -> bool:
        """Encola un mensaje. Bloquea si la cola está llena.

        Returns:
            False si el dispatcher ya no acepta entregas (apagado)
        """
        with self._lock:
            if not self._accepting:
                self._rejected += 1
                logger.warning("[DISPATCH] Not accepting deliveries, rejected topic=%s", topic)
                return False
            self._enqueued += 1
            self._submitting += 1
        try:
            self._queue.put((topic, payload))
        finally:
            with self._lock:
                self._submitting -= 1
                self._submits_done.notify_all()
        return True

    def stop(self) -> None:
        """Deja de aceptar entregas, drena la cola y detiene los workers."""
        with self._lock:
            if not self._accepting and not self._workers:
                return
            self._accepting = False
            # Un put pendiente debe llegar a la cola antes del join
            self._submits_done.wait_for(lambda: self._submitting == 0)

        logger.info("[DISPATCH] Draining in-flight messages depth=%d", self._queue.qsize())
        self._queue.join()
        self._stop_event.set()
        for t in self._workers:
            t.join()
        self._workers.clear()
        logger.info("[DISPATCH] Stopped. %s", self.metrics)

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            try:
                topic, payload = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                self._handler(topic, payload)
                with self._lock:
                    self._processed += 1
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.exception("[DISPATCH] Worker %d error: %s", worker_id, e)
            finally:
                self._queue.task_done()

    @property
    def is_accepting(self) -> bool:
        return self._accepting

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "rejected": self._rejected,
                "processed": self._processed,
                "errors": self._errors,
            }


def create_dispatcher(
    handler: Handler,
    max_queue_size: Optional[int] = None,
    num_workers: Optional[int] = None,
) -> MessageDispatcher:
    """Factory: crea y arranca el dispatcher."""
    dispatcher = MessageDispatcher(
        handler=handler,
        max_queue_size=max_queue_size or DEFAULT_QUEUE_SIZE,
        num_workers=num_workers or DEFAULT_NUM_WORKERS,
    )
    dispatcher.start()
    return dispatcher
