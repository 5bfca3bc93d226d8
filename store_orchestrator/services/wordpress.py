"""
WP-CLI runner for a single store pod.

All commands execute inside the WordPress container via the Kubernetes
exec API; `check=True` turns a non-zero exit into CommandError, same as
the helm wrapper.
"""

import logging

from store_orchestrator.errors import CommandError
from store_orchestrator.models import ExecResult
from store_orchestrator.services.kubernetes_service import KubernetesService

logger = logging.getLogger("wordpress")


class WordPressCLI:
    def __init__(self, cluster: KubernetesService, namespace: str, pod: str, container: str):
        self.cluster = cluster
        self.namespace = namespace
        self.pod = pod
        self.container = container

    async def exec(self, command: list[str], check: bool = True) -> ExecResult:
        result = await self.cluster.exec_in_pod(self.namespace, self.pod, self.container, command)
        if check and result.returncode != 0:
            raise CommandError(command, result.returncode, result.stderr)
        return result

    async def wp(self, *args: str, check: bool = True) -> ExecResult:
        return await self.exec(["wp", *args, "--allow-root"], check=check)

    async def install_cli(self, url: str) -> bool:
        """Fetch wp-cli.phar onto the PATH. Safe to repeat; the image may already ship it."""
        script = (
            f"curl -sSO {url} && chmod +x wp-cli.phar && mv wp-cli.phar /usr/local/bin/wp"
        )
        result = await self.exec(["/bin/bash", "-c", script], check=False)
        if result.returncode != 0:
            logger.debug(f"wp-cli install skipped in {self.namespace}: {result.stderr[:200]}")
        return result.returncode == 0

    async def config_create(self, dbname: str, dbuser: str, dbpass: str, dbhost: str):
        await self.wp(
            "config", "create",
            f"--dbname={dbname}", f"--dbuser={dbuser}",
            f"--dbpass={dbpass}", f"--dbhost={dbhost}",
            "--force",
        )

    async def is_installed(self) -> bool:
        result = await self.wp("core", "is-installed", check=False)
        return result.returncode == 0

    async def core_install(self, url: str, title: str, admin_user: str,
                           admin_password: str, admin_email: str):
        await self.wp(
            "core", "install",
            f"--url={url}", f"--title={title}",
            f"--admin_user={admin_user}", f"--admin_password={admin_password}",
            f"--admin_email={admin_email}", "--skip-email",
        )

    async def plugin_install(self, plugin: str):
        await self.wp("plugin", "install", plugin, "--activate")

    async def theme_install(self, theme: str):
        await self.wp("theme", "install", theme, "--activate")

    async def option_update(self, key: str, value: str):
        await self.wp("option", "update", key, value)

    async def wc_install_pages(self, user: str):
        await self.wp("wc", "tool", "run", "install_pages", f"--user={user}")

    async def wc_product_create(self, name: str, price: str, user: str):
        await self.wp(
            "wc", "product", "create",
            f"--name={name}", "--type=simple", f"--regular_price={price}",
            f"--user={user}",
        )

    async def page_id(self, slug: str) -> str:
        result = await self.wp("post", "list", "--post_type=page", f"--name={slug}", "--field=ID")
        return result.stdout.strip().splitlines()[0].strip() if result.stdout.strip() else ""
