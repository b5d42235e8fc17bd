"""CLI entry point for the ingestion service (MQTT receiver + retention)."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Optional, Sequence

from ..common.config import get_settings
from .core.receiver import IngestionService

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="IoT telemetry ingestion service (MQTT → SensorReadings)")
    p.add_argument("--log-level", default="INFO", help="root log level (DEBUG, INFO, WARNING...)")
    args = p.parse_args(argv)
    logging.getLogger().setLevel(args.log_level.upper())

    settings = get_settings()
    logger.info("Ingestion service starting")
    logger.info(
        "Config: broker=%s:%d topic=%s retention=%dd sweep=%.0fs workers=%d",
        settings.mqtt_broker_host,
        settings.mqtt_broker_port,
        settings.mqtt_topic,
        settings.retention_days,
        settings.retention_sweep_interval_seconds,
        settings.ingest_num_workers,
    )

    shutdown = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Signal %s received, shutting down...", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    service = IngestionService(settings)
    if not service.start():
        logger.error("Ingestion service failed to start")
        return 1

    try:
        while not shutdown.wait(1.0):
            pass
    finally:
        service.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
