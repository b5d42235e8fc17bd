"""Ingesta de lecturas IoT por MQTT.

Estructura:
- core/            → dominio, validación, transporte MQTT, orquestador
- infrastructure/  → persistencia (SensorReadings)
- main.py          → API de consulta (FastAPI)
- cli.py           → proceso de ingesta
"""
