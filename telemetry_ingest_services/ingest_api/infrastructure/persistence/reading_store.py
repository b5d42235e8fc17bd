"""Store de lecturas sobre la tabla SensorReadings.

Cada operación abre su propia transacción con `engine.begin()`, por lo que
es seguro llamarlas concurrentemente desde los workers de ingesta y desde
el sweeper de retención. No existe operación de update: las filas son
write-once y solo se eliminan por antigüedad.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Set

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from ...core.domain.reading import Reading, ReadingStatistics
from ...errors import InvalidQueryError, PersistenceError
from .schema import ensure_schema, sensor_readings

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def _as_aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_reading(row: Row) -> Reading:
    return Reading(
        id=int(row.Id),
        device_id=str(row.DeviceId),
        temperature=float(row.Temperature),
        humidity=float(row.Humidity),
        timestamp=row.Timestamp,
    )


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise InvalidQueryError(f"limit must be >= 1, got {limit}")


class ReadingStore:
    """Almacenamiento durable de Readings."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"schema creation failed: {e}") from e

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def insert(self, reading: Reading) -> int:
        """Inserta una lectura y retorna el Id asignado."""
        try:
            with self._engine.begin() as conn:
                result = conn.execute(insert(sensor_readings).values(**reading.to_row()))
                reading_id = int(result.inserted_primary_key[0])
        except SQLAlchemyError as e:
            raise PersistenceError(f"insert failed device_id={reading.device_id}: {e}") from e

        logger.debug("[STORE] Inserted id=%d device_id=%s", reading_id, reading.device_id)
        return reading_id

    def delete_older_than(self, cutoff: datetime) -> int:
        """Borra en bloque las filas con Timestamp estrictamente anterior a cutoff.

        El filtro se evalúa en la BD (no se cargan filas en memoria).

        Returns:
            Cantidad de filas eliminadas (0 es válido)
        """
        cutoff = _as_aware(cutoff)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(sensor_readings).where(sensor_readings.c.Timestamp < cutoff)
                )
                deleted = int(result.rowcount or 0)
        except SQLAlchemyError as e:
            raise PersistenceError(f"delete failed cutoff={cutoff.isoformat()}: {e}") from e

        return deleted

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    def _fetch(self, stmt) -> List[Reading]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError(f"query failed: {e}") from e
        return [_row_to_reading(r) for r in rows]

    def _ordered(self):
        return select(sensor_readings).order_by(
            sensor_readings.c.Timestamp.desc(),
            sensor_readings.c.Id.desc(),
        )

    def find_latest(self, limit: int = DEFAULT_LIMIT) -> List[Reading]:
        _check_limit(limit)
        return self._fetch(self._ordered().limit(limit))

    def find_by_device(self, device_id: str, limit: int = DEFAULT_LIMIT) -> List[Reading]:
        if not device_id or not device_id.strip():
            raise InvalidQueryError("device_id is required")
        _check_limit(limit)
        stmt = (
            self._ordered()
            .where(sensor_readings.c.DeviceId == device_id)
            .limit(limit)
        )
        return self._fetch(stmt)

    def find_by_time_range(self, start: datetime, end: datetime) -> List[Reading]:
        """Lecturas con start <= Timestamp < end, más recientes primero."""
        start, end = _as_aware(start), _as_aware(end)
        if start >= end:
            raise InvalidQueryError("start must be before end")
        stmt = self._ordered().where(
            sensor_readings.c.Timestamp >= start,
            sensor_readings.c.Timestamp < end,
        )
        return self._fetch(stmt)

    def aggregate_statistics(self) -> ReadingStatistics:
        t = sensor_readings.c
        stmt = select(
            func.count(t.Id).label("count"),
            func.avg(t.Temperature).label("avg_temperature"),
            func.avg(t.Humidity).label("avg_humidity"),
            func.min(t.Temperature).label("min_temperature"),
            func.max(t.Temperature).label("max_temperature"),
            func.min(t.Humidity).label("min_humidity"),
            func.max(t.Humidity).label("max_humidity"),
        )
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"statistics query failed: {e}") from e

        if not row.count:
            return ReadingStatistics.empty()

        return ReadingStatistics(
            count=int(row.count),
            avg_temperature=float(row.avg_temperature),
            avg_humidity=float(row.avg_humidity),
            min_temperature=float(row.min_temperature),
            max_temperature=float(row.max_temperature),
            min_humidity=float(row.min_humidity),
            max_humidity=float(row.max_humidity),
        )

    def distinct_device_ids(self) -> Set[str]:
        stmt = select(sensor_readings.c.DeviceId).distinct()
        try:
            with self._engine.connect() as conn:
                return {str(r.DeviceId) for r in conn.execute(stmt)}
        except SQLAlchemyError as e:
            raise PersistenceError(f"device query failed: {e}") from e
