"""
Pytest configuration and fixtures.

The cluster and Helm are replaced by in-memory fakes (tests/fakes.py) that
record every call, so lifecycle ordering and admission decisions can be
asserted directly.
"""

import os

# Must be set before store_orchestrator.config is imported
os.environ.setdefault("RATE_LIMIT", "1000/minute")

from dataclasses import replace

import pytest

from store_orchestrator.config import Settings
from store_orchestrator.event_log import EventLog
from store_orchestrator.lifecycle import LifecycleController
from tests.fakes import FakeCluster, FakeHelm

FAST = dict(
    POD_READY_TIMEOUT=0,
    POD_READY_POLL_INTERVAL=0,
    ADDRESS_POLL_INTERVAL=0,
    DB_SETTLE_DELAY=0,
    DB_RETRY_INTERVAL=0,
    PAGE_LOOKUP_INTERVAL=0,
    REDIS_URL="",
    DEMO_MODE=False,
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return replace(Settings(), AUDIT_FILE=str(tmp_path / "audit.log"), **FAST)


@pytest.fixture
def events(settings) -> EventLog:
    return EventLog(settings.AUDIT_FILE, maxlen=settings.LOG_BUFFER_SIZE)


@pytest.fixture
def helm() -> FakeHelm:
    return FakeHelm()


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def controller(settings, helm, cluster, events) -> LifecycleController:
    return LifecycleController(settings, helm, cluster, events)
