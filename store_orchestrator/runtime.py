"""Wires the event log, collaborators, controller and queue together."""

from dataclasses import dataclass

from store_orchestrator.admission import AdmissionQueue
from store_orchestrator.config import Settings
from store_orchestrator.event_log import EventLog
from store_orchestrator.lifecycle import LifecycleController
from store_orchestrator.services.helm_service import HelmService
from store_orchestrator.services.kubernetes_service import KubernetesService


@dataclass
class Runtime:
    settings: Settings
    events: EventLog
    controller: LifecycleController
    queue: AdmissionQueue


def build_runtime(settings: Settings) -> Runtime:
    events = EventLog(settings.AUDIT_FILE, maxlen=settings.LOG_BUFFER_SIZE, redis_url=settings.REDIS_URL)
    helm = HelmService(settings.CHART_PATH, settings.VALUES_PATH, timeout=settings.HELM_TIMEOUT)
    cluster = KubernetesService(
        in_cluster=settings.IN_CLUSTER,
        kubeconfig=settings.KUBECONFIG,
        exec_timeout=settings.EXEC_TIMEOUT,
    )
    controller = LifecycleController(settings, helm, cluster, events)
    queue = AdmissionQueue(
        controller, helm, events,
        max_concurrent=settings.MAX_CONCURRENT,
        max_stores=settings.MAX_STORES_TOTAL,
    )
    return Runtime(settings=settings, events=events, controller=controller, queue=queue)
