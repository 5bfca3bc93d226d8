import asyncio

import pytest
from fastapi.testclient import TestClient
from kubernetes.client import ApiException

from store_orchestrator.admission import AdmissionQueue
from store_orchestrator.lifecycle import LifecycleController
from store_orchestrator.main import create_app
from store_orchestrator.runtime import Runtime
from tests.fakes import helm_failure


@pytest.fixture
def runtime(settings, helm, cluster, events) -> Runtime:
    controller = LifecycleController(settings, helm, cluster, events)
    queue = AdmissionQueue(controller, helm, events, max_concurrent=2, max_stores=5)
    return Runtime(settings=settings, events=events, controller=controller, queue=queue)


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as c:
        yield c


def test_create_store_normalizes_name_and_queues(client, helm):
    helm.install_gate = asyncio.Event()  # hold provisioning at deploy

    resp = client.post("/api/stores", json={"storeName": "My Shop!"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "queued", "storeId": "my-shop-"}


def test_create_store_duplicate_while_in_progress(client, helm):
    helm.install_gate = asyncio.Event()

    first = client.post("/api/stores", json={"storeName": "demo"})
    second = client.post("/api/stores", json={"storeName": "DEMO"})

    assert first.json()["status"] == "queued"
    assert second.json() == {"status": "duplicate", "storeId": "demo"}


def test_create_store_rejects_unusable_name(client):
    resp = client.post("/api/stores", json={"storeName": "!!!"})
    assert resp.status_code == 422


def test_create_store_requires_name(client):
    resp = client.post("/api/stores", json={})
    assert resp.status_code == 422


def test_logs_newest_first(client, events):
    events.info("older", "a")
    events.success("newer", "b")

    resp = client.get("/api/logs")

    assert resp.status_code == 200
    body = resp.json()
    assert [e["message"] for e in body[:2]] == ["newer", "older"]
    assert body[0]["type"] == "SUCCESS"
    assert body[0]["storeId"] == "b"


def test_list_stores_with_access_url(client, helm, cluster):
    helm.releases = [{"name": "shop", "namespace": "shop", "status": "deployed", "revision": "2"}]

    resp = client.get("/api/stores")

    assert resp.status_code == 200
    assert resp.json()[0]["name"] == "shop"
    assert resp.json()[0]["accessUrl"] == "http://34.1.2.3"


def test_list_stores_null_url_on_lookup_failure(client, helm, cluster):
    helm.releases = [{"name": "shop", "namespace": "shop", "status": "deployed"}]
    cluster.fail["address"] = ApiException(status=404, reason="Not Found")

    resp = client.get("/api/stores")

    assert resp.json()[0]["accessUrl"] is None


def test_delete_store(client, helm, cluster):
    resp = client.delete("/api/stores/shop")

    assert resp.status_code == 200
    assert resp.json() == {"status": "success"}
    assert ("uninstall", "shop") in helm.calls
    assert ("delete_namespace", "shop") in cluster.calls


def test_delete_store_failure_returns_raw_error(client, helm):
    helm.fail["uninstall"] = helm_failure("uninstall")

    resp = client.delete("/api/stores/shop")

    assert resp.status_code == 500
    assert "Error: uninstall failed" in resp.json()["detail"]


def test_upgrade_store(client, helm, cluster):
    resp = client.put("/api/stores/shop/upgrade")

    assert resp.status_code == 200
    assert resp.json() == {"status": "upgraded", "storeId": "shop"}
    assert ("upgrade", "shop") in helm.calls
    assert ("quota", "shop") in cluster.calls


def test_upgrade_failure(client, helm):
    helm.fail["upgrade"] = helm_failure("upgrade")

    resp = client.put("/api/stores/shop/upgrade")

    assert resp.status_code == 500
    assert "upgrade failed" in resp.json()["detail"]


def test_rollback_store(client, helm):
    resp = client.put("/api/stores/shop/rollback")

    assert resp.status_code == 200
    assert resp.json() == {"status": "rolled_back", "storeId": "shop"}
    assert ("rollback", "shop", 1) in helm.calls


def test_rollback_to_specific_revision(client, helm):
    client.put("/api/stores/shop/rollback", params={"revision": 3})
    assert ("rollback", "shop", 3) in helm.calls


def test_link_domain(client, cluster):
    resp = client.post("/api/stores/shop/domain", json={"domain": "shop.example.com"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "linked", "domain": "shop.example.com"}
    assert ("label", "shop", {"custom-domain": "shop.example.com"}) in cluster.calls


def test_link_domain_failure(client, cluster):
    cluster.fail["label"] = ApiException(status=404, reason="Not Found")

    resp = client.post("/api/stores/shop/domain", json={"domain": "shop.example.com"})

    assert resp.status_code == 500
    assert "Not Found" in resp.json()["detail"]


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["queue"]["maxConcurrent"] == 2
    assert body["queue"]["maxStores"] == 5
    assert body["redis"] == "disabled"


def test_metrics_exposed(client):
    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "store_orchestrator_stores_enqueued_total" in resp.text
