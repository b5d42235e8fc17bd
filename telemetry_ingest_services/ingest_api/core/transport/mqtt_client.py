"""Conector MQTT para recepción de lecturas.

Responsabilidades:
- Conexión/desconexión a broker MQTT (una sesión por conector)
- Suscripción a topics
- Delegación de mensajes a handler
- Reconexión según política inyectable (por defecto: ninguna)

El loop de red corre en un thread propio que llama `client.loop()`; así la
decisión de reconectar queda en la política y no en el loop interno de paho.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

import paho.mqtt.client as mqtt

from .reconnect import NoReconnect, ReconnectPolicy
from ...errors import TransportError
from ... import metrics

logger = logging.getLogger(__name__)

MessageHandlerFn = Callable[[str, bytes], object]


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
    )


class MQTTConnector:
    """Sesión MQTT única contra un broker."""

    def __init__(
        self,
        client_id: str = "telemetry-ingest",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        connect_timeout: float = 5.0,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        client_factory: Callable[[str], mqtt.Client] = _default_client_factory,
    ):
        self.client_id = f"{client_id}-{int(time.time())}"
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout
        self._reconnect_policy = reconnect_policy or NoReconnect()
        self._client_factory = client_factory

        self._client: Optional[mqtt.Client] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._connack = threading.Event()
        self._connack_error: Optional[str] = None
        self._suback = threading.Condition()
        self._suback_codes: Dict[int, list] = {}
        self._resubscribe_mids: set = set()
        self._lifecycle_lock = threading.Lock()
        self._connected = False
        self._message_handler: Optional[MessageHandlerFn] = None
        self._topics: Dict[str, int] = {}

        self.broker_host: Optional[str] = None
        self.broker_port: Optional[int] = None
        self._messages_received = 0
        self._handler_errors = 0
        self._reconnect_count = 0

    def set_message_handler(self, handler: MessageHandlerFn):
        """Configura el handler de mensajes: handler(topic, payload_bytes)."""
        self._message_handler = handler

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def connect(self, broker_host: str, broker_port: int = 1883) -> None:
        """Conecta al broker y espera el CONNACK.

        Raises:
            TransportError: fallo de red/protocolo, CONNACK rechazado o timeout
        """
        with self._lifecycle_lock:
            self._teardown()

            self.broker_host = broker_host
            self.broker_port = broker_port
            self._stop_event.clear()
            self._connack.clear()
            self._connack_error = None
            self._topics.clear()
            with self._suback:
                self._suback_codes.clear()
                self._resubscribe_mids.clear()

            client = self._client_factory(self.client_id)
            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            client.on_message = self._on_message
            client.on_subscribe = self._on_subscribe
            if self.username and self.password:
                client.username_pw_set(self.username, self.password)
            self._client = client

            logger.info("[MQTT] Connecting to %s:%d", broker_host, broker_port)
            try:
                client.connect(broker_host, broker_port, keepalive=self.keepalive)
            except (OSError, ValueError) as e:
                self._client = None
                logger.error("[MQTT] Connection failed to %s:%d: %s", broker_host, broker_port, e)
                raise TransportError(f"connect to {broker_host}:{broker_port} failed: {e}") from e

            self._thread = threading.Thread(
                target=self._network_loop,
                daemon=True,
                name="mqtt-network",
            )
            self._thread.start()

            if not self._connack.wait(self.connect_timeout):
                self._teardown()
                logger.error("[MQTT] Connection timeout after %.1fs", self.connect_timeout)
                raise TransportError(
                    f"connect to {broker_host}:{broker_port} timed out after {self.connect_timeout}s"
                )

            if self._connack_error is not None:
                error = self._connack_error
                self._teardown()
                raise TransportError(f"broker {broker_host}:{broker_port} refused connection: {error}")

    def subscribe(self, topic: str, qos: int = 1) -> None:
        """Suscribe al topic y espera el SUBACK del broker.

        Raises:
            TransportError: si no hay sesión conectada, el cliente o el broker
                rechazan la solicitud, o el SUBACK no llega a tiempo
        """
        if self._client is None or not self._connected:
            raise TransportError(f"cannot subscribe to {topic}: not connected")

        result, mid = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Subscribe failed topic=%s rc=%s", topic, result)
            raise TransportError(f"subscribe to {topic} failed: rc={result}")

        # El SUBACK puede llegar antes de conocer el mid: se guarda por mid
        with self._suback:
            answered = self._suback.wait_for(
                lambda: mid in self._suback_codes, timeout=self.connect_timeout
            )
            codes = self._suback_codes.pop(mid, [])

        if not answered:
            logger.error("[MQTT] Subscribe timeout topic=%s mid=%s", topic, mid)
            raise TransportError(
                f"subscribe to {topic} timed out after {self.connect_timeout}s"
            )

        rejected = [rc for rc in codes if rc.is_failure]
        if rejected:
            logger.error("[MQTT] Subscription rejected by broker topic=%s rc=%s", topic, rejected[0])
            raise TransportError(f"broker rejected subscription to {topic}: {rejected[0]}")

        self._topics[topic] = qos
        logger.info("[MQTT] Subscribed to %s qos=%d", topic, qos)

    def disconnect(self) -> None:
        """Desconecta del broker. Idempotente."""
        with self._lifecycle_lock:
            self._teardown()

    def _teardown(self) -> None:
        client = self._client
        if client is None:
            return

        self._stop_event.set()
        try:
            client.disconnect()
        except Exception as e:
            logger.warning("[MQTT] Disconnect error: %s", e)

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

        self._client = None
        self._thread = None
        self._connected = False
        metrics.MQTT_CONNECTOR_CONNECTED.set(0)
        logger.info(
            "[MQTT] Disconnected. received=%d handler_errors=%d reconnects=%d",
            self._messages_received,
            self._handler_errors,
            self._reconnect_count,
        )

    # ------------------------------------------------------------------
    # Loop de red
    # ------------------------------------------------------------------

    def _network_loop(self) -> None:
        client = self._client
        while client is not None and not self._stop_event.is_set():
            rc = client.loop(timeout=1.0)
            if rc == mqtt.MQTT_ERR_SUCCESS or self._stop_event.is_set():
                continue

            self._connected = False
            metrics.MQTT_CONNECTOR_CONNECTED.set(0)
            logger.warning("[MQTT] Connection lost (rc=%s)", rc)
            if not self._reconnect(client):
                return

    def _reconnect(self, client: mqtt.Client) -> bool:
        attempt = 0
        while not self._stop_event.is_set():
            attempt += 1
            delay = self._reconnect_policy.next_delay(attempt)
            if delay is None:
                logger.error(
                    "[MQTT] Giving up reconnect after %d attempt(s) policy=%r",
                    attempt - 1,
                    self._reconnect_policy,
                )
                return False

            logger.info("[MQTT] Reconnect attempt=%d in %.2fs", attempt, delay)
            if self._stop_event.wait(delay):
                return False

            try:
                client.reconnect()
            except (OSError, ValueError) as e:
                logger.warning("[MQTT] Reconnect attempt=%d failed: %s", attempt, e)
                continue

            self._reconnect_count += 1
            return True
        return False

    # ------------------------------------------------------------------
    # Callbacks de paho
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code.is_failure:
            self._connected = False
            self._connack_error = str(reason_code)
            logger.error("[MQTT] Connection refused: %s", reason_code)
        else:
            self._connected = True
            metrics.MQTT_CONNECTOR_CONNECTED.set(1)
            logger.info("[MQTT] Connected to broker %s:%s", self.broker_host, self.broker_port)
            # Tras una reconexión se restauran las suscripciones
            for topic, qos in list(self._topics.items()):
                _result, mid = client.subscribe(topic, qos=qos)
                with self._suback:
                    self._resubscribe_mids.add(mid)
                logger.info("[MQTT] Re-subscribed to %s", topic)
        self._connack.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback de desconexión."""
        self._connected = False
        metrics.MQTT_CONNECTOR_CONNECTED.set(0)
        if self._stop_event.is_set():
            logger.info("[MQTT] Disconnected (requested)")
        else:
            logger.warning("[MQTT] Disconnected (rc=%s)", reason_code)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        """Callback de SUBACK: publica los códigos para subscribe()."""
        with self._suback:
            if mid in self._resubscribe_mids:
                # Nadie espera este SUBACK
                self._resubscribe_mids.discard(mid)
                for rc in reason_code_list:
                    if rc.is_failure:
                        logger.error("[MQTT] Re-subscription rejected by broker mid=%s rc=%s", mid, rc)
                return
            self._suback_codes[mid] = list(reason_code_list)
            self._suback.notify_all()

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje - delega al handler."""
        self._messages_received += 1
        handler = self._message_handler
        if handler is None:
            logger.debug("[MQTT] No handler registered, ignoring topic=%s", msg.topic)
            return
        try:
            handler(msg.topic, msg.payload)
        except Exception as e:
            self._handler_errors += 1
            logger.exception("[MQTT] Handler error topic=%s: %s", msg.topic, e)

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def subscriptions(self) -> Dict[str, int]:
        return dict(self._topics)

    @property
    def stats(self) -> dict:
        return {
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topics": list(self._topics),
            "messages_received": self._messages_received,
            "handler_errors": self._handler_errors,
            "reconnect_count": self._reconnect_count,
        }
