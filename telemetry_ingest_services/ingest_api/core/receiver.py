"""Receptor de ingesta - orquestador del proceso.

Arranque:
  1. BD (ping + esquema)
  2. Handler + dispatcher (workers)
  3. Conector MQTT (connect + subscribe)
  4. Sweeper de retención

Apagado (una única señal):
  1. Detener sweeper antes de su próximo ciclo
  2. Desconectar MQTT (no se aceptan entregas nuevas)
  3. Drenar mensajes en curso
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from ...common.config import Settings, get_settings
from ...common.db import build_engine, ping
from ...jobs.retention.config import RetentionConfig
from ...jobs.retention.sweeper import RetentionSweeper
from ..errors import PersistenceError, TransportError
from ..infrastructure.persistence.reading_store import ReadingStore
from .monitoring.stats import Stats
from .transport.dispatcher import MessageDispatcher
from .transport.message_handler import MessageHandler
from .transport.mqtt_client import MQTTConnector
from .transport.reconnect import BackoffReconnect, NoReconnect, ReconnectPolicy, RetryConfig
from .validation.reading_validator import ReadingValidator

logger = logging.getLogger(__name__)


def reconnect_policy_from_settings(settings: Settings) -> ReconnectPolicy:
    if not settings.mqtt_reconnect_enabled:
        return NoReconnect()
    return BackoffReconnect(RetryConfig(
        max_attempts=settings.mqtt_reconnect_max_attempts,
        base_delay=settings.mqtt_reconnect_base_delay,
        max_delay=settings.mqtt_reconnect_max_delay,
    ))


class IngestionService:
    """Orquesta conector MQTT → handler → store, y el sweeper de retención.

    Componentes:
    - MQTTConnector: Conexión y suscripción MQTT
    - MessageDispatcher: Cola + workers
    - MessageHandler: Parseo, validación y persistencia
    - RetentionSweeper: Limpieza periódica
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[Engine] = None,
        connector: Optional[MQTTConnector] = None,
    ):
        self._settings = settings or get_settings()
        self._engine = engine
        self._connector = connector
        self._store: Optional[ReadingStore] = None
        self._handler: Optional[MessageHandler] = None
        self._dispatcher: Optional[MessageDispatcher] = None
        self._sweeper: Optional[RetentionSweeper] = None
        self._running = False

    def start(self) -> bool:
        """Inicia el servicio. False si falla la config, la BD o el broker (condición de arranque).

        Ante cualquier fallo se ejecuta stop(): ningún conector ni worker queda vivo.
        """
        s = self._settings
        try:
            # 0. Config (antes de abrir recursos)
            retention = RetentionConfig(retention=s.retention_window, interval=s.sweep_interval)

            # 1. BD
            if self._engine is None:
                self._engine = build_engine(s.database_url)
            if not ping(self._engine):
                logger.error("[RECEIVER] Database connection failed")
                return False
            self._store = ReadingStore(self._engine)
            self._store.ensure_schema()

            # 2. Pipeline
            self._handler = MessageHandler(
                self._store,
                ReadingValidator(future_tolerance=s.future_tolerance),
            )
            self._dispatcher = MessageDispatcher(
                self._handler.handle,
                max_queue_size=s.ingest_queue_size,
                num_workers=s.ingest_num_workers,
            )
            self._dispatcher.start()

            # 3. MQTT
            if self._connector is None:
                self._connector = MQTTConnector(
                    client_id=s.mqtt_client_id,
                    username=s.mqtt_username,
                    password=s.mqtt_password,
                    keepalive=s.mqtt_keepalive,
                    connect_timeout=s.mqtt_connect_timeout_seconds,
                    reconnect_policy=reconnect_policy_from_settings(s),
                )
            self._connector.set_message_handler(self._dispatcher.submit)
            self._connector.connect(s.mqtt_broker_host, s.mqtt_broker_port)
            self._connector.subscribe(s.mqtt_topic, qos=s.mqtt_qos)

            # 4. Retención
            self._sweeper = RetentionSweeper(self._store, retention)
            self._sweeper.start()

        except (TransportError, PersistenceError, ValueError) as e:
            logger.error("[RECEIVER] Start failed: %s", e)
            self.stop()
            return False
        except Exception:
            logger.exception("[RECEIVER] Unexpected error during start")
            self.stop()
            raise

        self._running = True
        logger.info(
            "[RECEIVER] Started successfully broker=%s:%d topic=%s",
            s.mqtt_broker_host, s.mqtt_broker_port, s.mqtt_topic,
        )
        return True

    def stop(self) -> None:
        """Detiene el servicio. Idempotente y seguro tras un arranque parcial."""
        self._running = False

        if self._sweeper is not None:
            self._sweeper.stop()

        if self._connector is not None:
            self._connector.disconnect()

        if self._dispatcher is not None:
            self._dispatcher.stop()

        if self._handler is not None:
            logger.info("[RECEIVER] Stopped. %s", self._handler.stats)

    @property
    def store(self) -> Optional[ReadingStore]:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        """Estadísticas del receptor."""
        handler_stats = self._handler.stats if self._handler else Stats()
        return {
            "running": self._running,
            "connector": self._connector.stats if self._connector else None,
            "dispatcher": self._dispatcher.metrics if self._dispatcher else None,
            "retention": self._sweeper.stats if self._sweeper else None,
            **handler_stats.to_dict(),
        }

    def health_check(self) -> dict:
        connected = self._connector.is_connected if self._connector else False
        return {
            "healthy": self._running and connected,
            "running": self._running,
            "connected": connected,
            "sweeper_running": self._sweeper.is_running if self._sweeper else False,
        }
