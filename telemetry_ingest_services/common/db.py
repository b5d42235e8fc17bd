from __future__ import annotations

import logging
import threading
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    connect_args: dict = {}
    if url.get_backend_name() == "sqlite":
        # Los workers de ingesta y el sweeper comparten conexiones del pool entre threads.
        connect_args = {"check_same_thread": False, "timeout": 30}

    logger.info(
        "[DB] Crear engine backend=%s url=%s",
        url.get_backend_name(),
        url.render_as_string(hide_password=True),
    )
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def ping(engine: Engine) -> bool:
    """Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Test de conexión OK")
        return True
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ")
        return False


def get_engine(settings: Optional[Settings] = None) -> Engine:
    """Engine singleton por proceso (creado en el primer uso)."""
    global _engine

    with _engine_lock:
        if _engine is None:
            settings = settings or get_settings()
            _engine = build_engine(settings.database_url)
        return _engine


def dispose_engine() -> None:
    global _engine

    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None
