"""Transporte MQTT: conector, dispatcher y handler de mensajes."""

from .dispatcher import MessageDispatcher, create_dispatcher
from .message_handler import IngestOutcome, IngestStatus, MessageHandler
from .mqtt_client import MQTTConnector
from .reconnect import BackoffReconnect, NoReconnect, ReconnectPolicy, RetryConfig

__all__ = [
    "BackoffReconnect",
    "IngestOutcome",
    "IngestStatus",
    "MQTTConnector",
    "MessageDispatcher",
    "MessageHandler",
    "NoReconnect",
    "ReconnectPolicy",
    "RetryConfig",
    "create_dispatcher",
]
