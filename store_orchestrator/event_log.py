"""
Event log: process-wide operational history.

Each record goes to three places:
  - an in-memory ring buffer (newest first, capped) served by GET /api/logs
  - an append-only NDJSON audit file
  - Redis Streams / PubSub, when REDIS_URL is set, sent from a background
    thread so a slow or hung Redis never stalls the caller

Only the in-memory buffer is authoritative for callers; the audit file and
Redis are best-effort and never raise into the operation being logged.
"""

import json
import logging
import queue
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Optional

import redis

from store_orchestrator.models import LogEntry, LogType

logger = logging.getLogger("event_log")

STREAM_MAXLEN = 100
CHANNEL = "store:events"
REDIS_SOCKET_TIMEOUT = 2.0
REDIS_RETRY_BACKOFF = 30.0
OUTBOX_SIZE = 1000


class EventLog:
    def __init__(self, audit_file: Optional[str], maxlen: int = 50, redis_url: str = ""):
        self.audit_file = audit_file
        self._entries: deque[dict] = deque(maxlen=maxlen)
        self._last_id = 0
        self._lock = threading.Lock()
        self._redis_url = redis_url
        self._redis_client = None
        self._redis_retry_at = 0.0
        self._outbox: queue.Queue[Optional[dict]] = queue.Queue(maxsize=OUTBOX_SIZE)
        self._publisher: Optional[threading.Thread] = None
        if redis_url:
            self._publisher = threading.Thread(
                target=self._drain_outbox, name="event-log-redis", daemon=True
            )
            self._publisher.start()

    def _next_id(self) -> int:
        # Millisecond timestamp, bumped when two records land in the same ms
        now = time.time_ns() // 1_000_000
        self._last_id = max(now, self._last_id + 1)
        return self._last_id

    def record(self, type: LogType, message: str, store_id: Optional[str] = None) -> LogEntry:
        with self._lock:
            entry = LogEntry(
                id=self._next_id(),
                timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
                type=type,
                message=message,
                storeId=store_id,
            )
            data = entry.model_dump(mode="json")
            self._entries.appendleft(data)
            self._append_audit(data)

        logger.info(f"[{entry.type.value}] {message}")
        self._publish(data)
        return entry

    def info(self, message: str, store_id: Optional[str] = None) -> LogEntry:
        return self.record(LogType.INFO, message, store_id)

    def success(self, message: str, store_id: Optional[str] = None) -> LogEntry:
        return self.record(LogType.SUCCESS, message, store_id)

    def warning(self, message: str, store_id: Optional[str] = None) -> LogEntry:
        return self.record(LogType.WARNING, message, store_id)

    def error(self, message: str, store_id: Optional[str] = None) -> LogEntry:
        return self.record(LogType.ERROR, message, store_id)

    def entries(self) -> list[dict]:
        """Snapshot of the buffer, newest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # --- Durable audit file ---

    def _append_audit(self, data: dict):
        if not self.audit_file:
            return
        try:
            with open(self.audit_file, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(data) + "\n")
        except OSError as e:
            logger.error(f"Audit write failed: {e}")

    # --- Redis fan-out (optional) ---

    def redis(self):
        """Lazy-init Redis. Returns None if unavailable or still backing off after a failure."""
        if self._redis_client is not None:
            return self._redis_client
        if not self._redis_url or time.monotonic() < self._redis_retry_at:
            return None
        try:
            client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
                socket_timeout=REDIS_SOCKET_TIMEOUT,
            )
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable (non-fatal), retrying in {REDIS_RETRY_BACKOFF:.0f}s: {e}")
            self._redis_retry_at = time.monotonic() + REDIS_RETRY_BACKOFF
            return None
        logger.info(f"Redis connected: {self._redis_url}")
        self._redis_client = client
        return client

    @property
    def redis_connected(self) -> bool:
        return self._redis_client is not None

    def _publish(self, data: dict):
        if self._publisher is None:
            return
        try:
            self._outbox.put_nowait(data)
        except queue.Full:
            logger.debug(f"Redis outbox full, dropping event {data['id']}")

    def _drain_outbox(self):
        while True:
            data = self._outbox.get()
            try:
                if data is None:
                    return
                self._send(data)
            finally:
                self._outbox.task_done()

    def _send(self, data: dict):
        r = self.redis()
        if not r:
            return
        fields = {k: ("" if v is None else str(v)) for k, v in data.items()}
        try:
            if data.get("storeId"):
                r.xadd(f"store:events:{data['storeId']}", fields, maxlen=STREAM_MAXLEN)
            r.publish(CHANNEL, json.dumps(data))
        except redis.RedisError as e:
            logger.debug(f"Redis publish failed (non-fatal): {e}")
            self._redis_client = None
            self._redis_retry_at = time.monotonic() + REDIS_RETRY_BACKOFF

    def close(self, timeout: float = 5.0):
        """Stop the Redis publisher once it has sent what is already queued."""
        if self._publisher is None:
            return
        try:
            self._outbox.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Redis outbox still full at shutdown; pending events dropped")
        self._publisher.join(timeout)
        self._publisher = None
