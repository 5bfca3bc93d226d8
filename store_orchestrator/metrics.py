"""Prometheus metrics for the provisioning queue."""

from prometheus_client import Counter, Gauge

STORES_ENQUEUED = Counter(
    "store_orchestrator_stores_enqueued_total",
    "Store provisioning requests accepted into the queue",
)
PROVISIONS = Counter(
    "store_orchestrator_provisions_total",
    "Finished provisioning tasks",
    ["outcome"],
)
QUOTA_REJECTIONS = Counter(
    "store_orchestrator_quota_rejections_total",
    "Tasks rejected because the global store quota was reached",
)
ACTIVE_TASKS = Gauge(
    "store_orchestrator_active_tasks",
    "Provisioning tasks currently in flight",
)
QUEUE_DEPTH = Gauge(
    "store_orchestrator_queue_depth",
    "Tasks waiting for a worker",
)
