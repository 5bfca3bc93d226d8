import json
import threading
import time

import redis

from store_orchestrator import event_log
from store_orchestrator.event_log import EventLog
from store_orchestrator.models import LogType


def test_entries_are_newest_first(tmp_path):
    log = EventLog(str(tmp_path / "audit.log"))
    log.info("first", "shop")
    log.success("second", "shop")
    log.error("third")

    entries = log.entries()
    assert [e["message"] for e in entries] == ["third", "second", "first"]
    assert entries[0]["type"] == "ERROR"
    assert entries[0]["storeId"] is None
    assert entries[1]["storeId"] == "shop"


def test_ids_strictly_increase(tmp_path):
    log = EventLog(str(tmp_path / "audit.log"))
    ids = [log.info(f"m{i}").id for i in range(20)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 20


def test_buffer_is_capped_and_evicts_oldest(tmp_path):
    log = EventLog(str(tmp_path / "audit.log"), maxlen=50)
    for i in range(75):
        log.record(LogType.INFO, f"event {i}")

    entries = log.entries()
    assert len(log) == 50
    assert entries[0]["message"] == "event 74"
    assert entries[-1]["message"] == "event 25"


def test_audit_file_keeps_every_record(tmp_path):
    path = tmp_path / "audit.log"
    log = EventLog(str(path), maxlen=5)
    for i in range(12):
        log.warning(f"event {i}", "shop")

    lines = path.read_text().splitlines()
    assert len(lines) == 12
    records = [json.loads(line) for line in lines]
    assert records[0]["message"] == "event 0"
    assert records[-1]["message"] == "event 11"
    assert {r["type"] for r in records} == {"WARNING"}
    assert all(r["timestamp"].endswith("+00:00") for r in records)


def test_audit_file_is_appended_not_rewritten(tmp_path):
    path = tmp_path / "audit.log"
    path.write_text('{"message": "from a previous run"}\n')
    log = EventLog(str(path))
    log.info("new")

    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["message"] == "from a previous run"


def test_unwritable_audit_file_does_not_raise(tmp_path, caplog):
    missing_dir = tmp_path / "does-not-exist" / "audit.log"
    log = EventLog(str(missing_dir))

    entry = log.error("still recorded", "shop")

    assert entry.message == "still recorded"
    assert log.entries()[0]["message"] == "still recorded"
    assert "Audit write failed" in caplog.text


def test_redis_disabled_without_url(tmp_path):
    log = EventLog(str(tmp_path / "audit.log"), redis_url="")
    assert log.redis() is None


class FakeRedis:
    def __init__(self, hold: threading.Event = None, ping_error: Exception = None):
        self.hold = hold
        self.ping_error = ping_error
        self.streams: list[tuple] = []
        self.published: list[dict] = []

    def ping(self):
        if self.ping_error is not None:
            raise self.ping_error
        return True

    def xadd(self, key, fields, maxlen=None):
        if self.hold is not None:
            self.hold.wait(5)
        self.streams.append((key, fields, maxlen))

    def publish(self, channel, message):
        self.published.append(json.loads(message))


def _patch_from_url(monkeypatch, fake):
    connects = []

    def from_url(url, **kwargs):
        connects.append(kwargs)
        return fake

    monkeypatch.setattr(event_log.redis.Redis, "from_url", from_url)
    return connects


def test_slow_redis_does_not_hold_up_record(tmp_path, monkeypatch):
    hold = threading.Event()
    fake = FakeRedis(hold=hold)
    connects = _patch_from_url(monkeypatch, fake)
    log = EventLog(str(tmp_path / "audit.log"), redis_url="redis://localhost:6379/0")

    started = time.monotonic()
    for i in range(3):
        log.info(f"event {i}", "shop")
    elapsed = time.monotonic() - started

    assert elapsed < 1
    assert [e["message"] for e in log.entries()] == ["event 2", "event 1", "event 0"]

    hold.set()
    log.close()

    assert [m["message"] for m in fake.published] == ["event 0", "event 1", "event 2"]
    assert {key for key, _, _ in fake.streams} == {"store:events:shop"}
    assert fake.streams[0][2] == 100
    assert connects[0]["socket_timeout"] == event_log.REDIS_SOCKET_TIMEOUT
    assert connects[0]["socket_connect_timeout"] == event_log.REDIS_SOCKET_TIMEOUT
    assert log.redis_connected


def test_failed_redis_connect_backs_off(tmp_path, monkeypatch):
    fake = FakeRedis(ping_error=redis.ConnectionError("connection refused"))
    connects = _patch_from_url(monkeypatch, fake)
    log = EventLog(str(tmp_path / "audit.log"), redis_url="redis://localhost:6379/0")

    assert log.redis() is None
    assert log.redis() is None
    assert len(connects) == 1
    assert not log.redis_connected

    log.info("still recorded")
    log.close()
    assert log.entries()[0]["message"] == "still recorded"
    assert len(connects) == 1
