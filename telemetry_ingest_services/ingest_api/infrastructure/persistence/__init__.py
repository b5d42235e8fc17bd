"""Persistencia de lecturas (SQLAlchemy Core)."""

from .reading_store import ReadingStore
from .schema import ensure_schema, sensor_readings

__all__ = ["ReadingStore", "ensure_schema", "sensor_readings"]
