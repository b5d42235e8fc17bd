"""Tests de los entry points de línea de comandos."""

import signal
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from telemetry_ingest_services.ingest_api import cli as ingest_cli
from telemetry_ingest_services.jobs.retention import cli as retention_cli


@pytest.fixture
def signal_mock(monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr(signal, "signal", mock)
    return mock


# =============================================================================
# JOB DE RETENCIÓN
# =============================================================================

class TestRetentionCli:

    def test_once_deletes_expired_readings(self, engine, store, make_reading):
        now = datetime.now(timezone.utc)
        store.insert(make_reading(device_id="expired", timestamp=now - timedelta(days=31)))
        store.insert(make_reading(device_id="kept", timestamp=now - timedelta(days=1)))

        url = engine.url.render_as_string(hide_password=False)
        rc = retention_cli.main(["--once", "--database-url", url, "--retention-days", "30"])

        assert rc == 0
        assert store.distinct_device_ids() == {"kept"}

    def test_once_with_shorter_window(self, engine, store, make_reading):
        now = datetime.now(timezone.utc)
        store.insert(make_reading(timestamp=now - timedelta(days=2)))

        url = engine.url.render_as_string(hide_password=False)
        rc = retention_cli.main(["--once", "--database-url", url, "--retention-days", "1"])

        assert rc == 0
        assert store.find_latest() == []

    def test_invalid_window_is_rejected(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'cli.db'}"

        with pytest.raises(ValueError):
            retention_cli.main(["--once", "--database-url", url, "--retention-days", "0"])


# =============================================================================
# SERVICIO DE INGESTA
# =============================================================================

class TestIngestCli:

    def test_start_failure_exits_with_error(self, monkeypatch, signal_mock):
        service = MagicMock()
        service.start.return_value = False
        monkeypatch.setattr(ingest_cli, "IngestionService", lambda settings: service)

        assert ingest_cli.main([]) == 1
        service.stop.assert_not_called()

    def test_signal_triggers_clean_shutdown(self, monkeypatch, signal_mock):
        service = MagicMock()

        def start():
            handlers = {c.args[0]: c.args[1] for c in signal_mock.call_args_list}
            handlers[signal.SIGTERM](signal.SIGTERM, None)
            return True

        service.start.side_effect = start
        monkeypatch.setattr(ingest_cli, "IngestionService", lambda settings: service)

        assert ingest_cli.main([]) == 0
        service.stop.assert_called_once()
