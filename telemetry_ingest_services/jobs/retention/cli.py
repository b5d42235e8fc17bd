"""CLI entry point for the retention job."""

from __future__ import annotations

import argparse
import logging
import signal
from datetime import timedelta
from typing import Optional, Sequence

from ...common.config import get_settings
from ...common.db import build_engine, ping
from ...ingest_api.errors import TelemetryIngestError
from ...ingest_api.infrastructure.persistence.reading_store import ReadingStore
from .config import RetentionConfig
from .sweeper import RetentionSweeper

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    p = argparse.ArgumentParser(description="Retention job (delete SensorReadings older than N days)")
    p.add_argument("--retention-days", type=int, default=settings.retention_days)
    p.add_argument("--interval-seconds", type=float, default=settings.retention_sweep_interval_seconds)
    p.add_argument("--database-url", default=settings.database_url)
    p.add_argument("--once", action="store_true", help="run a single cycle and exit")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    args = build_parser().parse_args(argv)
    cfg = RetentionConfig(
        retention=timedelta(days=args.retention_days),
        interval=timedelta(seconds=args.interval_seconds),
    )

    engine = build_engine(args.database_url)
    if not ping(engine):
        return 1

    store = ReadingStore(engine)
    try:
        store.ensure_schema()
    except TelemetryIngestError as e:
        logger.error("Schema check failed: %s", e)
        return 1

    sweeper = RetentionSweeper(store, cfg)
    logger.info("Retention job started")
    logger.info("Config: retention=%dd, interval=%.1fs, once=%s", args.retention_days, args.interval_seconds, args.once)

    try:
        if args.once:
            try:
                sweeper.run_cycle()
            except TelemetryIngestError as e:
                logger.error("Retention cycle failed: %s", e)
                return 1
            return 0

        def _shutdown(signum, frame):
            logger.info("Signal %s received, stopping retention job...", signum)
            sweeper.stop()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        sweeper.run_forever()
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())
