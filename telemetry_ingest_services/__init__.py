"""Servicio de ingesta de telemetría IoT (MQTT → validación → SQL) con retención."""

__version__ = "0.1.0"
