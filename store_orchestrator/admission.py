"""
Admission queue: FIFO store provisioning with bounded concurrency.

MAX_CONCURRENT worker tasks pull StoreTasks from an asyncio.Queue. Before a
task starts, the worker checks the global store quota against live Helm
releases plus stores already in flight; a task over quota is rejected with
an ERROR event and never touches the cluster.

A store id is accepted at most once while it is queued or in flight, so two
workers never provision the same namespace at the same time.
"""

import asyncio
import logging
import subprocess
from collections import deque
from typing import Optional

from store_orchestrator import metrics
from store_orchestrator.errors import CommandError, QuotaExceeded
from store_orchestrator.event_log import EventLog
from store_orchestrator.lifecycle import LifecycleController
from store_orchestrator.models import ProvisionOutcome, StoreTask
from store_orchestrator.services.helm_service import HelmService

logger = logging.getLogger("admission")


class AdmissionQueue:
    def __init__(self, controller: LifecycleController, releases: HelmService, events: EventLog,
                 max_concurrent: int = 2, max_stores: int = 5):
        self.controller = controller
        self.releases = releases
        self.events = events
        self.max_concurrent = max_concurrent
        self.max_stores = max_stores
        self._queue: asyncio.Queue[StoreTask] = asyncio.Queue()
        self._pending_ids: deque[str] = deque()
        self._in_flight: set[str] = set()
        self._active = 0
        self._admission_lock = asyncio.Lock()
        self._workers: list[asyncio.Task] = []
        self.recent_outcomes: deque[ProvisionOutcome] = deque(maxlen=50)

    # --- Introspection ---

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> list[str]:
        """Store ids waiting for a worker, in FIFO order."""
        return list(self._pending_ids)

    @property
    def in_flight(self) -> set[str]:
        return set(self._in_flight)

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    # --- Lifecycle ---

    def start(self):
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"provision-worker-{i}")
            for i in range(self.max_concurrent)
        ]
        logger.info(
            f"Admission queue started (max_concurrent={self.max_concurrent}, "
            f"max_stores={self.max_stores})"
        )

    async def stop(self):
        """Cancel all workers. In-flight provisioning is abandoned mid-phase."""
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Admission queue stopped")

    async def join(self):
        """Wait until every queued task has been rejected or run to completion."""
        await self._queue.join()

    # --- Producer side ---

    def enqueue(self, store_id: str) -> bool:
        """Queue a store for provisioning. Returns immediately; False for duplicates."""
        if store_id in self._pending_ids or store_id in self._in_flight:
            self.events.warning(f"Store {store_id} is already queued or provisioning", store_id)
            return False
        self._pending_ids.append(store_id)
        self._queue.put_nowait(StoreTask(store_id=store_id))
        metrics.STORES_ENQUEUED.inc()
        metrics.QUEUE_DEPTH.set(self._queue.qsize())
        logger.info(f"Queued {store_id} (depth={self._queue.qsize()})")
        return True

    # --- Consumer side ---

    async def _worker(self, index: int):
        while True:
            task = await self._queue.get()
            self._pending_ids.popleft()
            metrics.QUEUE_DEPTH.set(self._queue.qsize())
            try:
                await self._process(task)
            except Exception:
                logger.exception(f"Worker {index} crashed on {task.store_id}")
            finally:
                self._queue.task_done()

    async def _admit(self, task: StoreTask):
        """Reserve a quota slot for the task. Raises QuotaExceeded."""
        async with self._admission_lock:
            try:
                releases = await self.releases.list_releases()
                # Release names are only unique per namespace
                occupied = {(r.get("namespace"), r.get("name")) for r in releases}
                occupied |= {(store_id, store_id) for store_id in self._in_flight}
                if len(occupied) >= self.max_stores:
                    raise QuotaExceeded(self.max_stores, task.store_id)
            except (CommandError, subprocess.SubprocessError, OSError, ValueError) as e:
                self.events.warning(f"Could not count live stores, admitting anyway: {e}", task.store_id)
            self._in_flight.add(task.store_id)
            self._active += 1
            metrics.ACTIVE_TASKS.set(self._active)

    async def _process(self, task: StoreTask) -> Optional[ProvisionOutcome]:
        try:
            await self._admit(task)
        except QuotaExceeded as e:
            metrics.QUOTA_REJECTIONS.inc()
            metrics.PROVISIONS.labels(outcome="rejected").inc()
            self.events.error(str(e), task.store_id)
            return None

        try:
            self.events.info(f"Provisioning to cloud: {task.store_id}", task.store_id)
            outcome = await self.controller.provision(task.store_id)
            self.recent_outcomes.append(outcome)
            metrics.PROVISIONS.labels(outcome="ready" if outcome.succeeded else "failed").inc()
            return outcome
        finally:
            self._active -= 1
            self._in_flight.discard(task.store_id)
            metrics.ACTIVE_TASKS.set(self._active)
