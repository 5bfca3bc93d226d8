"""
Kubernetes service layer — abstracts all cluster interactions for a store.

Design principles:
  - Idempotent applies: create, and replace on 409 Conflict
  - Non-blocking: every client call runs in a worker thread
  - Namespace-scoped: every operation takes the store's namespace
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.stream import stream

from store_orchestrator.models import ExecResult

logger = logging.getLogger("kubernetes_service")


class KubernetesService:
    def __init__(self, in_cluster: bool = False, kubeconfig: str = "", exec_timeout: float = 300):
        self.in_cluster = in_cluster
        self.kubeconfig = kubeconfig
        self.exec_timeout = exec_timeout
        self._k8s_loaded = False

    def _ensure_k8s(self):
        """Load Kubernetes config exactly once."""
        if self._k8s_loaded:
            return
        if self.in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=self.kubeconfig or None)
        self._k8s_loaded = True

    def core_api(self) -> client.CoreV1Api:
        self._ensure_k8s()
        return client.CoreV1Api()

    def networking_api(self) -> client.NetworkingV1Api:
        self._ensure_k8s()
        return client.NetworkingV1Api()

    # ------------------------------------------------------------------
    # Apply (create or replace)
    # ------------------------------------------------------------------

    @staticmethod
    def _create_or_replace(create: Callable, replace: Callable, namespace: str, body: dict):
        name = body["metadata"]["name"]
        try:
            create(namespace=namespace, body=body)
            logger.info(f"{body['kind']} {name} created in {namespace}")
        except ApiException as e:
            if e.status != 409:
                raise
            replace(name=name, namespace=namespace, body=body)
            logger.info(f"{body['kind']} {name} replaced in {namespace}")

    async def apply_resource_quota(self, namespace: str, body: dict):
        api = self.core_api()
        await asyncio.to_thread(
            self._create_or_replace,
            api.create_namespaced_resource_quota,
            api.replace_namespaced_resource_quota,
            namespace, body,
        )

    async def apply_network_policy(self, namespace: str, body: dict):
        api = self.networking_api()
        await asyncio.to_thread(
            self._create_or_replace,
            api.create_namespaced_network_policy,
            api.replace_namespaced_network_policy,
            namespace, body,
        )

    async def apply_secret(self, namespace: str, body: dict):
        api = self.core_api()
        await asyncio.to_thread(
            self._create_or_replace,
            api.create_namespaced_secret,
            api.replace_namespaced_secret,
            namespace, body,
        )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def _pods_ready(self, namespace: str) -> tuple[bool, str]:
        """
        Check if all pods in a namespace are running and ready.
        Returns (all_ready, reason_string).
        """
        pods = self.core_api().list_namespaced_pod(namespace=namespace)
        if not pods.items:
            return False, "No pods found"

        for pod in pods.items:
            if pod.status.phase != "Running":
                return False, f"Pod {pod.metadata.name} is {pod.status.phase}"
            for cs in (pod.status.container_statuses or []):
                if not cs.ready:
                    if cs.state and cs.state.waiting:
                        return False, f"Pod {pod.metadata.name}: {cs.state.waiting.reason}"
                    return False, f"Pod {pod.metadata.name} container not ready"
        return True, "All pods running and ready"

    async def wait_for_pods_ready(self, namespace: str, timeout: float, interval: float) -> bool:
        """Poll until every pod in the namespace is ready. False on timeout."""
        deadline = time.monotonic() + timeout
        while True:
            try:
                ready, reason = await asyncio.to_thread(self._pods_ready, namespace)
            except ApiException as e:
                ready, reason = False, f"API error {e.status}"
            except Exception as e:
                # Any lookup failure counts as not ready
                ready, reason = False, f"{type(e).__name__}: {e}"
            if ready:
                return True
            if time.monotonic() + interval > deadline:
                logger.warning(f"Pods in {namespace} not ready before timeout: {reason}")
                return False
            logger.debug(f"Waiting for pods in {namespace}: {reason}")
            await asyncio.sleep(interval)

    async def get_service_address(self, namespace: str, service: str) -> Optional[str]:
        """External IP (or hostname) assigned to a LoadBalancer service, if any."""
        svc = await asyncio.to_thread(
            self.core_api().read_namespaced_service, name=service, namespace=namespace
        )
        lb = svc.status.load_balancer if svc.status else None
        if not lb or not lb.ingress:
            return None
        first = lb.ingress[0]
        return first.ip or first.hostname or None

    async def first_pod_name(self, namespace: str) -> Optional[str]:
        pods = await asyncio.to_thread(self.core_api().list_namespaced_pod, namespace=namespace)
        if not pods.items:
            return None
        return pods.items[0].metadata.name

    # ------------------------------------------------------------------
    # Exec
    # ------------------------------------------------------------------

    def _exec(self, namespace: str, pod: str, container: str, command: list[str]) -> ExecResult:
        resp = stream(
            self.core_api().connect_get_namespaced_pod_exec,
            pod, namespace,
            container=container,
            command=command,
            stderr=True, stdin=False, stdout=True, tty=False,
            _preload_content=False,
        )
        stdout, stderr = [], []
        deadline = time.monotonic() + self.exec_timeout
        try:
            while resp.is_open():
                if time.monotonic() > deadline:
                    return ExecResult(returncode=124, stdout="".join(stdout),
                                      stderr=f"exec timed out after {self.exec_timeout}s")
                resp.update(timeout=1)
                if resp.peek_stdout():
                    stdout.append(resp.read_stdout())
                if resp.peek_stderr():
                    stderr.append(resp.read_stderr())
        finally:
            resp.close()
        try:
            returncode = resp.returncode
        except Exception as e:
            # Socket closed without a usable status frame
            logger.warning(f"exec in {namespace}/{pod}: unreadable exit status ({type(e).__name__}: {e})")
            stderr.append(f"exec status unavailable: {type(e).__name__}: {e}")
            returncode = 1
        return ExecResult(
            returncode=returncode if returncode is not None else 1,
            stdout="".join(stdout),
            stderr="".join(stderr),
        )

    async def exec_in_pod(self, namespace: str, pod: str, container: str, command: list[str]) -> ExecResult:
        logger.debug(f"exec> {namespace}/{pod}[{container}] {' '.join(command)}")
        return await asyncio.to_thread(self._exec, namespace, pod, container, command)

    # ------------------------------------------------------------------
    # Namespace management
    # ------------------------------------------------------------------

    async def label_namespace(self, namespace: str, labels: dict):
        await asyncio.to_thread(
            self.core_api().patch_namespace,
            name=namespace,
            body={"metadata": {"labels": labels}},
        )
        logger.info(f"Namespace {namespace} labelled {labels}")

    async def delete_namespace(self, namespace: str):
        await asyncio.to_thread(self.core_api().delete_namespace, name=namespace)
        logger.info(f"Namespace {namespace} deletion initiated")

    async def delete_pvcs(self, namespace: str) -> int:
        """Delete every PVC in the namespace; 404 on the namespace counts as nothing to do."""
        api = self.core_api()

        def _delete() -> int:
            try:
                pvcs = api.list_namespaced_persistent_volume_claim(namespace=namespace)
            except ApiException as e:
                if e.status == 404:
                    return 0
                raise
            for pvc in pvcs.items:
                api.delete_namespaced_persistent_volume_claim(pvc.metadata.name, namespace)
                logger.info(f"Deleted PVC {pvc.metadata.name} in {namespace}")
            return len(pvcs.items)

        return await asyncio.to_thread(_delete)
