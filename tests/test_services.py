import json
import subprocess

import pytest
from kubernetes.client import ApiException

from store_orchestrator.errors import CommandError
from store_orchestrator.models import normalize_store_id
from store_orchestrator.services import helm_service
from store_orchestrator.services.credentials import (
    generate_credential,
    provision_credential,
    secret_manifest,
)
from store_orchestrator.services.hardening import (
    harden,
    network_policy_manifest,
    resource_quota_manifest,
)
from store_orchestrator.services.helm_service import HelmService
from tests.fakes import messages


@pytest.mark.parametrize("name, expected", [
    ("My Shop!", "my-shop-"),
    ("demo-shop", "demo-shop"),
    ("Café 42", "caf--42"),
    ("UPPER_case", "upper-case"),
])
def test_normalize_store_id(name, expected):
    assert normalize_store_id(name) == expected


def test_generate_credential_is_printable_and_unique():
    creds = {generate_credential() for _ in range(100)}
    assert len(creds) == 100
    assert all(len(c) >= 16 and c.isprintable() for c in creds)


def test_secret_manifest():
    body = secret_manifest("shop", "s3cret")
    assert body["metadata"] == {
        "name": "shop-admin-creds",
        "namespace": "shop",
        "labels": {"app.kubernetes.io/managed-by": "store-orchestrator"},
    }
    assert body["stringData"] == {"username": "admin", "password": "s3cret"}


@pytest.mark.asyncio
async def test_provision_credential_failure_is_reported_not_raised(cluster, events):
    cluster.fail["secret"] = ApiException(status=403, reason="Forbidden")

    ok = await provision_credential(cluster, events, "shop", "pw")

    assert ok is False
    assert messages(events, "ERROR")[0].startswith("Secret creation failed")


def test_hardening_manifests(settings):
    quota = resource_quota_manifest("shop", settings)
    assert quota["metadata"]["namespace"] == "shop"
    assert quota["spec"]["hard"] == {
        "pods": "10",
        "requests.cpu": "1",
        "requests.memory": "1Gi",
        "limits.cpu": "2",
        "limits.memory": "2Gi",
    }

    policy = network_policy_manifest("shop")
    assert policy["spec"]["podSelector"] == {}
    assert policy["spec"]["policyTypes"] == ["Ingress"]
    assert policy["spec"]["ingress"] == [{"from": [{"ipBlock": {"cidr": "0.0.0.0/0"}}]}]


@pytest.mark.asyncio
async def test_harden_success(cluster, events, settings):
    assert await harden(cluster, events, "shop", settings)
    assert cluster.ops() == ["quota", "netpol"]
    assert messages(events, "SUCCESS") == ["Namespace shielded (quota + network policy)"]


@pytest.mark.asyncio
async def test_harden_failure_is_a_warning(cluster, events, settings):
    cluster.fail["quota"] = ApiException(status=422, reason="Invalid")

    assert not await harden(cluster, events, "shop", settings)
    assert "netpol" not in cluster.ops()
    assert messages(events, "WARNING")[0].startswith("Hardening warning")
    assert messages(events, "SUCCESS") == []


class _Recorder:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.calls = []
        self.result = (returncode, stdout, stderr)

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        rc, out, err = self.result
        return subprocess.CompletedProcess(cmd, rc, out, err)


@pytest.mark.asyncio
async def test_helm_install_command(monkeypatch):
    recorder = _Recorder()
    monkeypatch.setattr(helm_service.subprocess, "run", recorder)

    await HelmService("/charts/woo", "/values.yaml").install("shop")

    assert recorder.calls == [[
        "helm", "install", "shop", "/charts/woo",
        "-f", "/values.yaml", "--create-namespace", "--namespace", "shop",
    ]]


@pytest.mark.asyncio
async def test_helm_upgrade_and_rollback_commands(monkeypatch):
    recorder = _Recorder()
    monkeypatch.setattr(helm_service.subprocess, "run", recorder)
    helm = HelmService("/charts/woo", "/values.yaml")

    await helm.upgrade("shop")
    await helm.rollback("shop")

    assert recorder.calls == [
        ["helm", "upgrade", "shop", "/charts/woo", "-f", "/values.yaml", "--namespace", "shop"],
        ["helm", "rollback", "shop", "1", "--namespace", "shop"],
    ]


@pytest.mark.asyncio
async def test_helm_list_parses_json(monkeypatch):
    releases = [{"name": "shop", "namespace": "shop", "status": "deployed"}]
    monkeypatch.setattr(helm_service.subprocess, "run", _Recorder(stdout=json.dumps(releases)))

    assert await HelmService("c", "v").list_releases() == releases


@pytest.mark.asyncio
async def test_helm_failure_raises_command_error(monkeypatch):
    monkeypatch.setattr(
        helm_service.subprocess, "run",
        _Recorder(returncode=1, stderr="Error: cannot re-use a name that is still in use"),
    )

    with pytest.raises(CommandError) as exc:
        await HelmService("c", "v").install("shop")

    assert exc.value.returncode == 1
    assert "still in use" in str(exc.value)
