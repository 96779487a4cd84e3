import threading
from datetime import datetime, timezone

import pytest

from sensorlog.models import NormalizedMessage, TimeRange
from sensorlog.normalizer import EPOCH
from sensorlog.store import MessageStore, ReadWriteLock


def _message(message_id: int, device_id: str = "dev") -> NormalizedMessage:
    return NormalizedMessage(
        message_id=message_id,
        session_id="session",
        device_id=device_id,
        total_readings=0,
        time_range=TimeRange(start=EPOCH, end=EPOCH),
        received_at=datetime(2025, 7, 5, tzinfo=timezone.utc),
    )


def _ids(messages):
    return [m.message_id for m in messages]


def test_empty_store():
    store = MessageStore()
    assert store.is_empty()
    assert store.size() == 0
    assert store.snapshot() == []
    assert store.latest(5) == []
    assert store.latest_one() == (None, False)


def test_add_keeps_arrival_order():
    store = MessageStore()
    for i in range(5):
        store.add(_message(i))
    assert _ids(store.snapshot()) == [0, 1, 2, 3, 4]
    assert store.size() == 5
    assert not store.is_empty()

    last, ok = store.latest_one()
    assert ok
    assert last.message_id == 4


def test_latest():
    store = MessageStore()
    for i in range(5):
        store.add(_message(i))
    assert _ids(store.latest(2)) == [3, 4]
    assert _ids(store.latest(10)) == [0, 1, 2, 3, 4]
    assert store.latest(0) == []
    assert store.latest(-3) == []


def test_max_size_evicts_oldest_first():
    store = MessageStore(max_size=3)
    for i in range(7):
        store.add(_message(i))
        assert store.size() <= 3
    assert _ids(store.snapshot()) == [4, 5, 6]


def test_trim_to_size():
    store = MessageStore()
    for i in range(10):
        store.add(_message(i))
    store.trim_to_size(4)
    assert _ids(store.snapshot()) == [6, 7, 8, 9]

    # trimming to a larger size is a no-op
    store.trim_to_size(100)
    assert store.size() == 4

    store.trim_to_size(0)
    assert store.is_empty()


def test_negative_trim_empties_store():
    store = MessageStore()
    store.add(_message(1))
    store.trim_to_size(-1)
    assert store.is_empty()


def test_snapshot_is_independent_of_later_writes():
    store = MessageStore(max_size=2)
    store.add(_message(1))
    snap = store.snapshot()
    snap.append(_message(99))
    store.add(_message(2))
    store.add(_message(3))

    assert _ids(snap) == [1, 99]
    assert _ids(store.snapshot()) == [2, 3]


def test_unsafe_all_is_not_changed_by_writers():
    store = MessageStore(max_size=2)
    store.add(_message(1))
    store.add(_message(2))
    view = store.unsafe_all()
    store.add(_message(3))
    assert _ids(view) == [1, 2]
    assert _ids(store.unsafe_all()) == [2, 3]


def test_messages_are_shared_not_copied():
    store = MessageStore()
    message = _message(1)
    store.add(message)
    assert store.snapshot()[0] is message


class TestConcurrency:
    """The store stays consistent with concurrent writers and readers."""

    def test_concurrent_adds(self):
        store = MessageStore()
        writers, per_writer = 8, 200

        def write(base):
            for i in range(per_writer):
                store.add(_message(base * per_writer + i))

        threads = [threading.Thread(target=write, args=(w,)) for w in range(writers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.size() == writers * per_writer
        assert sorted(_ids(store.snapshot())) == list(range(writers * per_writer))

    def test_readers_never_see_more_than_max_size(self):
        store = MessageStore(max_size=10)
        stop = threading.Event()
        violations = []

        def write():
            for i in range(2000):
                store.add(_message(i))
            stop.set()

        def read():
            while not stop.is_set():
                items = store.snapshot()
                if len(items) > 10:
                    violations.append(len(items))
                ids = _ids(items)
                if ids != sorted(ids):
                    violations.append(ids)

        readers = [threading.Thread(target=read) for _ in range(4)]
        writer = threading.Thread(target=write)
        for t in readers:
            t.start()
        writer.start()
        writer.join()
        for t in readers:
            t.join()

        assert violations == []
        assert _ids(store.snapshot()) == list(range(1990, 2000))


class TestReadWriteLock:
    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def read():
            with lock.read_locked():
                # both readers must be inside at once to pass the barrier
                inside.wait()

        threads = [threading.Thread(target=read) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        writer_in = threading.Event()

        def read():
            writer_in.wait(timeout=5)
            with lock.read_locked():
                events.append("read")

        reader = threading.Thread(target=read)
        reader.start()
        with lock.write_locked():
            writer_in.set()
            reader.join(timeout=0.2)
            events.append("write")
        reader.join(timeout=5)

        assert events == ["write", "read"]

    def test_lock_released_on_error(self):
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            with lock.write_locked():
                raise RuntimeError("boom")
        with lock.read_locked():
            pass
        with lock.write_locked():
            pass
