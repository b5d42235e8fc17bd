"""Núcleo de ingesta con arquitectura modular.

- domain/      → Modelo Reading
- adapters/    → Conversión payload MQTT → Dominio
- validation/  → Reglas físicas y temporales
- transport/   → Conector MQTT, dispatcher y handler
- monitoring/  → Stats
- receiver.py  → Orquestador (arranque / apagado)
"""
