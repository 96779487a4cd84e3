import json
import sqlite3
from pathlib import Path

import pytest

from sensorlog.normalizer import MalformedInput
from sensorlog.service import DASHBOARD_MAX_READINGS, DatabaseUnavailable, IngestService
from sensorlog.store import MessageStore

FIXTURE = Path(__file__).parent / "data" / "sensor_message_medium.json"


@pytest.fixture
def service(tmp_path, monkeypatch):
    monkeypatch.setattr("sensorlog.state.DB_FILE", str(tmp_path / "sensor_logger.db"))
    return IngestService(MessageStore(max_size=10))


def _body(message_id, device_id="dev", readings=1):
    return json.dumps({
        "messageId": message_id,
        "sessionId": "s",
        "deviceId": device_id,
        "payload": [{"name": "gyroscope", "time": i, "values": {"x": i}} for i in range(readings)],
    }).encode()


def test_ingest_adds_to_store(service):
    raw, message = service.ingest(FIXTURE.read_bytes())
    assert len(raw.payload) == 8
    assert message.total_readings == 8
    assert service.store.size() == 1
    assert service.memory_messages() == [message]


def test_ingest_rejects_malformed_body(service):
    with pytest.raises(MalformedInput):
        service.ingest(b"[1, 2, 3]")
    assert service.store.is_empty()


def test_memory_messages_limit(service):
    for i in range(4):
        service.ingest(_body(i))
    assert [m.message_id for m in service.memory_messages(2)] == [2, 3]
    assert len(service.memory_messages()) == 4


def test_archive_writes_raw_body(tmp_path, monkeypatch):
    archive = tmp_path / "archive"
    service = IngestService(MessageStore(), persist=False, archive_dir=str(archive))
    body = FIXTURE.read_bytes()
    service.ingest(body)

    files = list(archive.glob("sensor_messages_*.json"))
    assert len(files) == 1
    assert files[0].read_bytes() == body


def test_archive_failure_does_not_fail_ingest(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    service = IngestService(MessageStore(), persist=False, archive_dir=str(blocker))
    _, message = service.ingest(_body(1))
    assert message.message_id == 1
    assert service.store.size() == 1


class TestPersistence:
    def test_persist_saves(self, service):
        raw, message = service.ingest(_body(1, readings=2))
        assert service.persist(message, raw.payload) is True
        assert service.stats().total_messages == 1
        assert service.devices()[0].total_records == 2
        assert service.stored_messages(10)[0].message_id == 1

    def test_persist_duplicate_is_logged_not_raised(self, service):
        raw, message = service.ingest(_body(1))
        assert service.persist(message, raw.payload) is True
        assert service.persist(message, raw.payload) is False

    def test_persist_without_database(self):
        service = IngestService(MessageStore(), persist=False)
        raw, message = service.ingest(_body(1))
        assert service.db_enabled is False
        assert service.persist(message, raw.payload) is False
        with pytest.raises(DatabaseUnavailable):
            service.stats()

    def test_database_init_failure_disables_persistence(self, monkeypatch):
        def broken():
            raise sqlite3.OperationalError("unable to open database file")

        monkeypatch.setattr("sensorlog.state.initialize_database", broken)
        service = IngestService(MessageStore())
        assert service.db_enabled is False
        with pytest.raises(DatabaseUnavailable):
            service.devices()


class TestDashboardData:
    def test_empty(self, service):
        data = service.dashboard_data()
        assert data.has_data is False
        assert data.total_messages == 0
        assert data.latest_data == []

    def test_totals_and_latest(self, service):
        service.ingest(_body(1, device_id="phone", readings=3))
        service.ingest(FIXTURE.read_bytes())

        data = service.dashboard_data()
        assert data.has_data is True
        assert data.total_messages == 2
        assert data.total_readings == 11
        assert data.device_count == 2
        assert data.sensor_type_count == 7
        assert len(data.latest_data) == 8
        assert data.latest_data[0].sensor_type == "accelerometer"

    def test_latest_readings_are_capped(self, service):
        service.ingest(_body(1, readings=DASHBOARD_MAX_READINGS + 5))
        data = service.dashboard_data()
        assert data.total_readings == DASHBOARD_MAX_READINGS + 5
        assert len(data.latest_data) == DASHBOARD_MAX_READINGS

    def test_reads_one_consistent_view(self, service):
        """Totals and latest readings come from one read of the window."""
        first = service.ingest(_body(1, device_id="phone", readings=2))[1]
        second = service.ingest(_body(2, device_id="watch", readings=3))[1]

        class ShiftingStore(MessageStore):
            # the other reads disagree, as if a writer ran between them
            def unsafe_all(self):
                return [first, second]

            def latest_one(self):
                return first, True

            def is_empty(self):
                return True

        service.store = ShiftingStore()
        data = service.dashboard_data()
        assert data.has_data is True
        assert data.total_messages == 2
        assert data.total_readings == 5
        assert len(data.latest_data) == 3
        assert data.latest_data == list(second.readings)

    def test_empty_view(self, service):
        class EmptyStore(MessageStore):
            def is_empty(self):
                return False

        service.store = EmptyStore()
        assert service.dashboard_data().has_data is False
