"""
Helm service layer: wraps the helm CLI.

Each store is one release; release name and namespace are both the store id.
Commands run in a worker thread so the event loop keeps servicing other
stores while helm blocks.
"""

import asyncio
import json
import logging
import subprocess

from store_orchestrator.errors import CommandError

logger = logging.getLogger("helm_service")


def helm_run(args: list[str], check: bool = True, timeout: int = 300) -> subprocess.CompletedProcess:
    """Execute a Helm CLI command. Raises CommandError on failure if check=True."""
    cmd = ["helm"] + args
    logger.info(f"helm> {' '.join(cmd)}")
    result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    if result.stdout:
        logger.debug(f"helm stdout: {result.stdout[:800]}")
    if result.stderr:
        logger.warning(f"helm stderr: {result.stderr[:800]}")
    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr)
    return result


class HelmService:
    def __init__(self, chart_path: str, values_path: str, timeout: int = 300):
        self.chart_path = chart_path
        self.values_path = values_path
        self.timeout = timeout

    async def _run(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(helm_run, args, check, self.timeout)

    async def install(self, store_id: str):
        """Fresh install into a new namespace named after the store."""
        await self._run([
            "install", store_id, self.chart_path,
            "-f", self.values_path,
            "--create-namespace",
            "--namespace", store_id,
        ])

    async def upgrade(self, store_id: str):
        """New revision of an existing release, same name and namespace."""
        await self._run([
            "upgrade", store_id, self.chart_path,
            "-f", self.values_path,
            "--namespace", store_id,
        ])

    async def rollback(self, store_id: str, revision: int = 1):
        await self._run(["rollback", store_id, str(revision), "--namespace", store_id])

    async def uninstall(self, store_id: str):
        await self._run(["uninstall", store_id, "--namespace", store_id])

    async def list_releases(self) -> list[dict]:
        """All releases across namespaces, as reported by `helm list -A -o json`."""
        result = await self._run(["list", "-A", "-o", "json"])
        return json.loads(result.stdout or "[]")
