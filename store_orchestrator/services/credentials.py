"""
Per-store admin credentials.

The password is generated here, stored in the store namespace as the
Secret `<store_id>-admin-creds`, and handed to WordPress during core install.
"""

import logging
import secrets

from store_orchestrator.event_log import EventLog
from store_orchestrator.services.kubernetes_service import KubernetesService

logger = logging.getLogger("credentials")

ADMIN_USERNAME = "admin"


def generate_credential(nbytes: int = 12) -> str:
    """URL-safe random password; 12 bytes encode to 16 characters."""
    return secrets.token_urlsafe(nbytes)


def secret_name(store_id: str) -> str:
    return f"{store_id}-admin-creds"


def secret_manifest(store_id: str, credential: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": secret_name(store_id),
            "namespace": store_id,
            "labels": {"app.kubernetes.io/managed-by": "store-orchestrator"},
        },
        "type": "Opaque",
        "stringData": {
            "username": ADMIN_USERNAME,
            "password": credential,
        },
    }


async def provision_credential(cluster: KubernetesService, events: EventLog,
                               store_id: str, credential: str) -> bool:
    """Store the credential as a Secret. Returns False on failure (never raises)."""
    try:
        await cluster.apply_secret(store_id, secret_manifest(store_id, credential))
    except Exception as e:
        events.error(f"Secret creation failed: {e}", store_id)
        return False
    events.success(f"Admin secret created: {secret_name(store_id)}", store_id)
    return True
