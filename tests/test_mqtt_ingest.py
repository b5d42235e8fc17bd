"""Tests del pipeline de ingesta MQTT: parseo, handler y dispatcher concurrente."""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from conftest import FIXED_NOW
from helpers import encode, wait_for
from telemetry_ingest_services.ingest_api.core.adapters.mqtt_adapter import parse_payload
from telemetry_ingest_services.ingest_api.core.domain.reading import Reading
from telemetry_ingest_services.ingest_api.core.transport.dispatcher import (
    MessageDispatcher,
    create_dispatcher,
)
from telemetry_ingest_services.ingest_api.core.transport.message_handler import (
    IngestStatus,
    MessageHandler,
)
from telemetry_ingest_services.ingest_api.core.validation.reading_validator import ReadingValidator
from telemetry_ingest_services.ingest_api.errors import ParseError, PersistenceError
from telemetry_ingest_services.ingest_api.infrastructure.persistence.schema import sensor_readings

TOPIC = "/sensors/data"


@pytest.fixture
def validator():
    return ReadingValidator(clock=lambda: FIXED_NOW)


@pytest.fixture
def handler(store, validator):
    return MessageHandler(store, validator=validator)


def count_rows(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(sensor_readings)).scalar_one()


# =============================================================================
# TESTS DE PARSEO
# =============================================================================

class TestPayloadParsing:
    """Tests de parseo de payloads JSON."""

    def test_parse_valid_payload(self, valid_payload):
        result = parse_payload(encode(valid_payload))

        assert result.ok is True
        assert result.candidate.device_id == "Device-1"
        assert result.candidate.temperature == 21.5
        assert result.candidate.humidity == 48.0
        assert result.candidate.timestamp == FIXED_NOW - timedelta(seconds=30)

    def test_keys_are_case_insensitive(self):
        payload = {
            "deviceid": "Device-2",
            "TEMPERATURE": 10,
            "hUmIdItY": 55.5,
            "timestamp": "2026-01-31T08:00:00+00:00",
        }

        result = parse_payload(encode(payload))

        assert result.ok is True
        assert result.candidate.device_id == "Device-2"
        assert result.candidate.temperature == 10.0

    def test_offset_is_preserved(self):
        payload = {
            "DeviceId": "Device-1",
            "Temperature": 1.0,
            "Humidity": 1.0,
            "Timestamp": "2026-01-31T08:00:00.123+02:00",
        }

        result = parse_payload(encode(payload))

        assert result.ok is True
        assert result.candidate.timestamp.utcoffset() == timedelta(hours=2)

    def test_extra_fields_are_ignored(self, valid_payload):
        valid_payload["Firmware"] = "1.2.3"

        assert parse_payload(encode(valid_payload)).ok is True

    def test_malformed_json(self):
        result = parse_payload(b"{not json")

        assert result.ok is False
        assert "Invalid JSON" in result.error

    @pytest.mark.parametrize("raw", [b"[1, 2, 3]", b"42", b"\"text\"", b"null"])
    def test_non_object_json(self, raw):
        result = parse_payload(raw)

        assert result.ok is False
        assert "JSON object" in result.error

    @pytest.mark.parametrize("missing", ["Temperature", "Humidity", "Timestamp"])
    def test_missing_required_field(self, valid_payload, missing):
        del valid_payload[missing]

        result = parse_payload(encode(valid_payload))

        assert result.ok is False
        assert missing.lower() in result.error

    def test_missing_device_id_parses_as_empty(self, valid_payload):
        del valid_payload["DeviceId"]

        result = parse_payload(encode(valid_payload))

        assert result.ok is True
        assert result.candidate.device_id == ""

    @pytest.mark.parametrize("value", ["21.5", True, None])
    def test_non_numeric_temperature(self, valid_payload, value):
        valid_payload["Temperature"] = value

        assert parse_payload(encode(valid_payload)).ok is False

    def test_naive_timestamp_is_rejected(self, valid_payload):
        valid_payload["Timestamp"] = "2026-01-31T08:00:00"

        result = parse_payload(encode(valid_payload))

        assert result.ok is False
        assert "offset" in result.error

    def test_numeric_timestamp_is_rejected(self, valid_payload):
        valid_payload["Timestamp"] = 1769846400

        assert parse_payload(encode(valid_payload)).ok is False

    @pytest.mark.parametrize("value", ["1769846400", "1769846400.5", "31/01/2026 08:00:00+00:00", ""])
    def test_non_iso_timestamp_string_is_rejected(self, valid_payload, value):
        valid_payload["Timestamp"] = value

        result = parse_payload(encode(valid_payload))

        assert result.ok is False
        assert "ISO-8601" in result.error

    def test_numeric_device_id_is_rejected(self, valid_payload):
        valid_payload["DeviceId"] = 12

        assert parse_payload(encode(valid_payload)).ok is False

    def test_unwrap_returns_candidate(self, valid_payload):
        candidate = parse_payload(encode(valid_payload)).unwrap()

        assert candidate.device_id == "Device-1"

    def test_unwrap_raises_parse_error(self):
        with pytest.raises(ParseError, match="Invalid JSON"):
            parse_payload(b"\x00\x01").unwrap()


# =============================================================================
# TESTS DEL HANDLER
# =============================================================================

class TestMessageHandler:
    """Tests del handler parseo → validación → persistencia."""

    def test_valid_message_is_persisted(self, handler, store, valid_payload):
        outcome = handler.handle(TOPIC, encode(valid_payload))

        assert outcome.status is IngestStatus.PERSISTED
        assert outcome.reading_id is not None
        assert outcome.reading == Reading(
            device_id="Device-1",
            temperature=21.5,
            humidity=48.0,
            timestamp=FIXED_NOW - timedelta(seconds=30),
            id=outcome.reading_id,
        )

        saved = store.find_latest(10)
        assert len(saved) == 1
        assert saved[0].id == outcome.reading_id
        assert saved[0].device_id == "Device-1"
        assert saved[0].timestamp == FIXED_NOW - timedelta(seconds=30)

    def test_parse_error_is_dropped(self, handler, engine):
        outcome = handler.handle(TOPIC, b"garbage")

        assert outcome.status is IngestStatus.PARSE_ERROR
        assert outcome.reading is None
        assert "Invalid JSON" in outcome.reasons[0]
        assert count_rows(engine) == 0
        assert handler.stats.parse_errors == 1

    def test_missing_device_id_is_validation_error(self, handler, engine, valid_payload):
        del valid_payload["DeviceId"]

        outcome = handler.handle(TOPIC, encode(valid_payload))

        assert outcome.status is IngestStatus.VALIDATION_ERROR
        assert outcome.reasons[0].startswith("MissingDeviceId")
        assert count_rows(engine) == 0

    def test_out_of_range_is_dropped(self, handler, engine, valid_payload):
        valid_payload["Humidity"] = 120.0

        outcome = handler.handle(TOPIC, encode(valid_payload))

        assert outcome.status is IngestStatus.VALIDATION_ERROR
        assert count_rows(engine) == 0
        assert handler.stats.validation_errors == 1

    def test_future_timestamp_is_dropped(self, handler, engine, valid_payload):
        valid_payload["Timestamp"] = (FIXED_NOW + timedelta(minutes=10)).isoformat()

        outcome = handler.handle(TOPIC, encode(valid_payload))

        assert outcome.status is IngestStatus.VALIDATION_ERROR
        assert any("TimestampInFuture" in r for r in outcome.reasons)
        assert count_rows(engine) == 0

    def test_persistence_error_is_reported(self, validator, valid_payload):
        store = MagicMock()
        store.insert.side_effect = PersistenceError("database is locked")
        handler = MessageHandler(store, validator=validator)

        outcome = handler.handle(TOPIC, encode(valid_payload))

        assert outcome.status is IngestStatus.PERSISTENCE_ERROR
        assert "database is locked" in outcome.reasons[0]
        assert handler.stats.persistence_errors == 1
        assert handler.stats.persisted == 0

    def test_stats_track_every_message(self, handler, valid_payload):
        handler.handle(TOPIC, encode(valid_payload))
        handler.handle(TOPIC, b"{}")
        handler.handle(TOPIC, encode({**valid_payload, "Temperature": 5000.0}))

        stats = handler.stats
        assert stats.received == 3
        assert stats.persisted == 1
        assert stats.failed == 2
        assert stats.to_dict()["received"] == 3

    def test_ids_are_unique_and_increasing(self, handler, valid_payload):
        first = handler.handle(TOPIC, encode(valid_payload))
        second = handler.handle(TOPIC, encode(valid_payload))

        assert first.reading_id != second.reading_id
        assert second.reading_id > first.reading_id


# =============================================================================
# TESTS DEL DISPATCHER
# =============================================================================

class TestMessageDispatcher:
    """Tests de concurrencia y apagado del dispatcher."""

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            MessageDispatcher(handler=lambda t, p: None, num_workers=0)

    def test_submit_before_start_is_rejected(self):
        calls = []
        dispatcher = MessageDispatcher(handler=lambda t, p: calls.append(p))

        assert dispatcher.submit(TOPIC, b"x") is False
        assert dispatcher.metrics["rejected"] == 1
        assert calls == []

    def test_concurrent_ingest_persists_every_message(self, handler, engine, store, valid_payload):
        n = 60
        dispatcher = create_dispatcher(handler.handle, max_queue_size=10, num_workers=8)

        for i in range(n):
            payload = {**valid_payload, "DeviceId": f"Device-{i % 5}", "Temperature": float(i)}
            assert dispatcher.submit(TOPIC, encode(payload)) is True

        dispatcher.stop()

        assert count_rows(engine) == n
        ids = {r.id for r in store.find_latest(n)}
        assert len(ids) == n
        assert dispatcher.metrics["processed"] == n
        assert dispatcher.metrics["errors"] == 0
        assert handler.stats.persisted == n

    def test_stop_drains_in_flight_messages(self):
        release = threading.Event()
        done = []

        def slow_handler(topic, payload):
            release.wait(2.0)
            done.append(payload)

        dispatcher = MessageDispatcher(slow_handler, num_workers=1)
        dispatcher.start()
        for i in range(3):
            dispatcher.submit(TOPIC, str(i).encode())

        stopper = threading.Thread(target=dispatcher.stop)
        stopper.start()
        assert wait_for(lambda: not dispatcher.is_accepting)
        assert dispatcher.submit(TOPIC, b"late") is False

        release.set()
        stopper.join(timeout=5.0)

        assert not stopper.is_alive()
        assert done == [b"0", b"1", b"2"]

    def test_stop_waits_for_submit_already_accepted(self, monkeypatch):
        done = []
        dispatcher = create_dispatcher(lambda t, p: done.append(p), num_workers=1)
        entered = threading.Event()
        release = threading.Event()
        real_put = dispatcher._queue.put

        def gated_put(item, *args, **kwargs):
            entered.set()
            release.wait(2.0)
            real_put(item, *args, **kwargs)

        monkeypatch.setattr(dispatcher._queue, "put", gated_put)

        submitter = threading.Thread(target=dispatcher.submit, args=(TOPIC, b"accepted"))
        submitter.start()
        assert entered.wait(2.0)

        stopper = threading.Thread(target=dispatcher.stop)
        stopper.start()
        assert wait_for(lambda: not dispatcher.is_accepting)
        time.sleep(0.05)
        assert stopper.is_alive()

        release.set()
        submitter.join(timeout=5.0)
        stopper.join(timeout=5.0)

        assert not stopper.is_alive()
        assert done == [b"accepted"]
        assert dispatcher.metrics["processed"] == 1

    def test_handler_exception_does_not_kill_worker(self):
        seen = []

        def flaky(topic, payload):
            if payload == b"boom":
                raise RuntimeError("boom")
            seen.append(payload)

        dispatcher = create_dispatcher(flaky, num_workers=1)
        dispatcher.submit(TOPIC, b"boom")
        dispatcher.submit(TOPIC, b"ok")
        dispatcher.stop()

        assert seen == [b"ok"]
        assert dispatcher.metrics["errors"] == 1
        assert dispatcher.metrics["processed"] == 1

    def test_stop_is_idempotent(self):
        dispatcher = create_dispatcher(lambda t, p: None, num_workers=2)

        dispatcher.stop()
        dispatcher.stop()

        assert dispatcher.is_accepting is False
