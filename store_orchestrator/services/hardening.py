"""
Namespace hardening: ResourceQuota + NetworkPolicy for a store.

Failure here is deliberately non-fatal: a store that is up but not yet
fenced is preferred to a store that never comes up.
"""

import logging

from store_orchestrator.config import Settings
from store_orchestrator.event_log import EventLog
from store_orchestrator.services.kubernetes_service import KubernetesService

logger = logging.getLogger("hardening")

QUOTA_NAME = "store-quota"
NETWORK_POLICY_NAME = "isolate-store"


def resource_quota_manifest(store_id: str, settings: Settings) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": {"name": QUOTA_NAME, "namespace": store_id},
        "spec": {
            "hard": {
                "pods": settings.QUOTA_PODS,
                "requests.cpu": settings.QUOTA_REQUESTS_CPU,
                "requests.memory": settings.QUOTA_REQUESTS_MEMORY,
                "limits.cpu": settings.QUOTA_LIMITS_CPU,
                "limits.memory": settings.QUOTA_LIMITS_MEMORY,
            }
        },
    }


def network_policy_manifest(store_id: str) -> dict:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"name": NETWORK_POLICY_NAME, "namespace": store_id},
        "spec": {
            "podSelector": {},
            "policyTypes": ["Ingress"],
            "ingress": [
                {"from": [{"ipBlock": {"cidr": "0.0.0.0/0"}}]},
            ],
        },
    }


async def harden(cluster: KubernetesService, events: EventLog,
                 store_id: str, settings: Settings) -> bool:
    """Apply quota and network policy. Returns False (with a WARNING) on failure."""
    events.info("Applying namespace hardening (quota + network policy)...", store_id)
    try:
        await cluster.apply_resource_quota(store_id, resource_quota_manifest(store_id, settings))
        await cluster.apply_network_policy(store_id, network_policy_manifest(store_id))
    except Exception as e:
        events.warning(f"Hardening warning: {e}", store_id)
        return False
    events.success("Namespace shielded (quota + network policy)", store_id)
    return True
