"""Métricas Prometheus del servicio de ingesta."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MQTT_MESSAGES_RECEIVED = Counter(
    "telemetry_ingest_messages_received_total",
    "Total MQTT messages received",
)
MQTT_MESSAGES_DROPPED = Counter(
    "telemetry_ingest_messages_dropped_total",
    "Total MQTT messages dropped",
    ["reason"],  # parse_error, validation_error, persistence_error
)
READINGS_PERSISTED = Counter(
    "telemetry_ingest_readings_persisted_total",
    "Total readings persisted to SensorReadings",
)
MQTT_PROCESSING_LATENCY = Histogram(
    "telemetry_ingest_processing_seconds",
    "Per-message processing latency",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
MQTT_CONNECTOR_CONNECTED = Gauge(
    "telemetry_ingest_connector_connected",
    "MQTT connector connection status",
)
RETENTION_READINGS_DELETED = Counter(
    "telemetry_retention_readings_deleted_total",
    "Total readings deleted by the retention sweeper",
)
RETENTION_CYCLE_FAILURES = Counter(
    "telemetry_retention_cycle_failures_total",
    "Total failed retention cycles",
)
