"""API de consulta de lecturas (solo lectura) + health/ready/metrics.

Proyecciones delgadas sobre ReadingStore; la ingesta ocurre por MQTT.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text

from ..common.config import Settings, get_settings
from ..common.db import dispose_engine, get_engine
from .errors import InvalidQueryError, PersistenceError
from .infrastructure.persistence.reading_store import ReadingStore
from .schemas import SensorReadingOut, StatisticsOut

logger = logging.getLogger(__name__)


def get_store() -> ReadingStore:
    return ReadingStore(get_engine())


router = APIRouter(prefix="/api/sensorreadings", tags=["sensor-readings"])


def _bad_request(e: InvalidQueryError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


def _unavailable(e: PersistenceError) -> HTTPException:
    logger.error("[API] Store error: %s", e)
    # No exponer detalles de la BD al cliente
    return HTTPException(status_code=503, detail="storage unavailable")


@router.get("", response_model=List[SensorReadingOut])
def latest_readings(
    limit: int = Query(10, ge=1, le=1000),
    store: ReadingStore = Depends(get_store),
):
    """Las N lecturas más recientes."""
    try:
        return [SensorReadingOut.from_reading(r) for r in store.find_latest(limit)]
    except PersistenceError as e:
        raise _unavailable(e)


@router.get("/device/{device_id}", response_model=List[SensorReadingOut])
def readings_by_device(
    device_id: str,
    limit: int = Query(10),
    store: ReadingStore = Depends(get_store),
):
    try:
        return [SensorReadingOut.from_reading(r) for r in store.find_by_device(device_id, limit)]
    except InvalidQueryError as e:
        raise _bad_request(e)
    except PersistenceError as e:
        raise _unavailable(e)


@router.get("/range", response_model=List[SensorReadingOut])
def readings_by_range(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    store: ReadingStore = Depends(get_store),
):
    """Lecturas en [startDate, endDate)."""
    try:
        return [SensorReadingOut.from_reading(r) for r in store.find_by_time_range(start_date, end_date)]
    except InvalidQueryError as e:
        raise _bad_request(e)
    except PersistenceError as e:
        raise _unavailable(e)


@router.get("/statistics", response_model=StatisticsOut)
def statistics(store: ReadingStore = Depends(get_store)):
    try:
        return StatisticsOut.from_statistics(store.aggregate_statistics())
    except PersistenceError as e:
        raise _unavailable(e)


@router.get("/devices", response_model=List[str])
def devices(store: ReadingStore = Depends(get_store)):
    try:
        return sorted(store.distinct_device_ids())
    except PersistenceError as e:
        raise _unavailable(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Shutdown: liberar el pool de conexiones del proceso
    dispose_engine()
    logger.info("[API] Engine disposed")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="IoT Telemetry Ingest Service", version="0.1.0", lifespan=lifespan)

    # CORS para el dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.api_cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.get("/health")
    def health():
        """Liveness: ok mientras el proceso esté vivo."""
        return {"status": "ok"}

    @app.get("/ready")
    def ready(store: ReadingStore = Depends(get_store)):
        """Readiness: verifica conectividad con la BD."""
        try:
            with store.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {"status": "ready"}
        except Exception:
            logger.exception("[API] Readiness check failed")
            raise HTTPException(status_code=503, detail="not ready")

    @app.get("/metrics")
    def metrics():
        """Prometheus metrics endpoint"""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
