"""
Store lifecycle controller.

Provisioning state machine (phases run strictly in order):
  1. Deploy          helm install into a fresh namespace       fatal
  2. Harden          ResourceQuota + NetworkPolicy              non-fatal
  3. Await ready     every pod Running and Ready                fatal on timeout
  4. Await address   LoadBalancer ingress IP on the shop svc    fatal on exhaustion
  5. Credentials     admin password -> Secret                   non-fatal
  6. Bootstrap       WP-CLI: db config, core/plugin/theme/demo  fatal
  7. Finalize        static front page -> shop page             non-fatal

The controller keeps no state of its own: each poll reads the cluster live.
Upgrade, rollback, teardown and domain linking are single-shot operations
that reuse the same collaborators.
"""

import asyncio
import logging
import subprocess
from typing import Optional

from store_orchestrator.config import Settings
from store_orchestrator.errors import (
    BootstrapStepFailed,
    CommandError,
    DatabaseNotReady,
    DeployError,
    ErrorKind,
    FinalizeError,
    PodReadinessTimeout,
    PublicAddressTimeout,
    StoreError,
)
from store_orchestrator.event_log import EventLog
from store_orchestrator.models import Phase, ProvisionOutcome
from store_orchestrator.services.credentials import (
    ADMIN_USERNAME,
    generate_credential,
    provision_credential,
    secret_name,
)
from store_orchestrator.services.hardening import harden
from store_orchestrator.services.helm_service import HelmService
from store_orchestrator.services.kubernetes_service import KubernetesService
from store_orchestrator.services.wordpress import WordPressCLI

logger = logging.getLogger("lifecycle")

HELM_ERRORS = (CommandError, subprocess.SubprocessError, OSError)


class LifecycleController:
    def __init__(self, settings: Settings, helm: HelmService,
                 cluster: KubernetesService, events: EventLog):
        self.settings = settings
        self.helm = helm
        self.cluster = cluster
        self.events = events

    # =====================================================================
    # Provisioning
    # =====================================================================

    async def provision(self, store_id: str) -> ProvisionOutcome:
        """
        Run every phase for one store. Never raises: fatal errors end the
        run with an ERROR event and are reported on the outcome.
        """
        outcome = ProvisionOutcome(store_id=store_id)
        try:
            await self._provision(store_id, outcome)
        except StoreError as e:
            outcome.error = str(e)
            outcome.error_kind = e.kind.value
            logger.error(f"Store {store_id} failed in {outcome.phases[-1].value}: {e}")
            self.events.error(f"Failed: {e}", store_id)
        except Exception as e:
            outcome.error = str(e)
            outcome.error_kind = ErrorKind.FATAL.value
            logger.exception(f"Store {store_id} failed unexpectedly")
            self.events.error(f"Failed: {e}", store_id)
        return outcome

    async def _provision(self, store_id: str, outcome: ProvisionOutcome):
        s = self.settings

        outcome.phases.append(Phase.DEPLOY)
        logger.info(f"[{store_id}] Step 1/7: Helm install")
        await self._deploy(store_id)

        outcome.phases.append(Phase.HARDEN)
        logger.info(f"[{store_id}] Step 2/7: Hardening namespace")
        if not await harden(self.cluster, self.events, store_id, s):
            outcome.degraded.append(Phase.HARDEN)

        outcome.phases.append(Phase.AWAIT_READY)
        logger.info(f"[{store_id}] Step 3/7: Waiting for pods")
        self.events.info("Waiting for cloud resources...", store_id)
        ready = await self.cluster.wait_for_pods_ready(
            store_id, s.POD_READY_TIMEOUT, s.POD_READY_POLL_INTERVAL
        )
        if not ready:
            raise PodReadinessTimeout(store_id)

        outcome.phases.append(Phase.AWAIT_ADDRESS)
        logger.info(f"[{store_id}] Step 4/7: Waiting for public address")
        address = await self._await_public_address(store_id)
        outcome.public_url = f"http://{address}"

        outcome.phases.append(Phase.CREDENTIALS)
        logger.info(f"[{store_id}] Step 5/7: Admin credentials")
        credential = generate_credential()
        if not await provision_credential(self.cluster, self.events, store_id, credential):
            outcome.degraded.append(Phase.CREDENTIALS)

        outcome.phases.append(Phase.BOOTSTRAP)
        logger.info(f"[{store_id}] Step 6/7: Content bootstrap")
        wp = await self._bootstrap(store_id, outcome.public_url, credential)

        outcome.phases.append(Phase.FINALIZE)
        logger.info(f"[{store_id}] Step 7/7: Finalize")
        if not await self._finalize(wp, store_id, outcome.public_url, credential):
            outcome.degraded.append(Phase.FINALIZE)

        outcome.succeeded = True
        logger.info(f"[{store_id}] ✓ Store ready at {outcome.public_url}")

    async def _deploy(self, store_id: str):
        try:
            await self.helm.install(store_id)
        except HELM_ERRORS as e:
            raise DeployError(f"Helm install failed: {e}", store_id) from e

    async def _await_public_address(self, store_id: str) -> str:
        s = self.settings
        for attempt in range(1, s.ADDRESS_MAX_ATTEMPTS + 1):
            try:
                address = await self.cluster.get_service_address(store_id, s.PUBLIC_SERVICE_NAME)
            except Exception as e:
                logger.debug(f"[{store_id}] service lookup failed (attempt {attempt}): {e}")
                address = None
            if address:
                self.events.success(f"Found public IP: {address}", store_id)
                return address
            if (attempt - 1) % s.ADDRESS_PROGRESS_EVERY == 0:
                self.events.info(
                    f"Waiting for public IP... (attempt {attempt}/{s.ADDRESS_MAX_ATTEMPTS})",
                    store_id,
                )
            if attempt < s.ADDRESS_MAX_ATTEMPTS:
                await asyncio.sleep(s.ADDRESS_POLL_INTERVAL)
        raise PublicAddressTimeout(store_id)

    async def _bootstrap(self, store_id: str, public_url: str, credential: str) -> WordPressCLI:
        s = self.settings
        self.events.info("Initializing store content...", store_id)

        try:
            pod = await self.cluster.first_pod_name(store_id)
        except Exception as e:
            raise BootstrapStepFailed("resolve pod", e, store_id) from e
        if not pod:
            raise BootstrapStepFailed("resolve pod", RuntimeError("no pods in namespace"), store_id)
        wp = WordPressCLI(self.cluster, store_id, pod, s.WORDPRESS_CONTAINER)

        try:
            await wp.install_cli(s.WP_CLI_URL)
        except Exception as e:
            logger.debug(f"[{store_id}] wp-cli install ignored: {e}")

        self.events.info("Configuring database (waiting for MySQL)...", store_id)
        await asyncio.sleep(s.DB_SETTLE_DELAY)
        await self._configure_database(wp, store_id)

        try:
            installed = await wp.is_installed()
        except Exception as e:
            raise BootstrapStepFailed("core is-installed", e, store_id) from e
        if installed:
            self.events.info("WordPress already installed, skipping content install", store_id)
            return wp

        self.events.info(f"Installing {s.COMMERCE_PLUGIN} & theme...", store_id)
        steps = [
            ("core install", lambda: wp.core_install(
                url=public_url, title=store_id, admin_user=ADMIN_USERNAME,
                admin_password=credential, admin_email=s.ADMIN_EMAIL,
            )),
            ("plugin install", lambda: wp.plugin_install(s.COMMERCE_PLUGIN)),
            ("disable coming soon", lambda: wp.option_update("woocommerce_coming_soon", "no")),
            ("install pages", lambda: wp.wc_install_pages(ADMIN_USERNAME)),
            ("theme install", lambda: wp.theme_install(s.THEME)),
            ("sample product", lambda: wp.wc_product_create(
                s.SAMPLE_PRODUCT_NAME, s.SAMPLE_PRODUCT_PRICE, ADMIN_USERNAME,
            )),
        ]
        for step, action in steps:
            try:
                await action()
            except Exception as e:
                raise BootstrapStepFailed(step, e, store_id) from e
        return wp

    async def _configure_database(self, wp: WordPressCLI, store_id: str):
        s = self.settings
        for attempt in range(1, s.DB_MAX_ATTEMPTS + 1):
            try:
                await wp.config_create(s.DB_NAME, s.DB_USER, s.DB_PASSWORD, s.DB_HOST)
                return
            except Exception as e:
                logger.debug(f"[{store_id}] wp config create failed (attempt {attempt}): {e}")
                self.events.warning(
                    f"MySQL not ready yet. Retrying in {s.DB_RETRY_INTERVAL:g}s...", store_id
                )
            if attempt < s.DB_MAX_ATTEMPTS:
                await asyncio.sleep(s.DB_RETRY_INTERVAL)
        raise DatabaseNotReady(store_id)

    async def _finalize(self, wp: WordPressCLI, store_id: str,
                        public_url: str, credential: str) -> bool:
        """Point the front page at the shop. Returns False if that was skipped."""
        homepage_set = False
        try:
            self.events.info("Setting homepage...", store_id)
            await wp.option_update("show_on_front", "page")
            page_id = await self._lookup_page(wp)
            if not page_id:
                raise FinalizeError(f"Could not find {self.settings.SHOP_PAGE_SLUG} page ID.", store_id)
            await wp.option_update("page_on_front", page_id)
            homepage_set = True
        except FinalizeError as e:
            self.events.warning(str(e), store_id)
        except Exception as e:
            self.events.warning(f"Homepage config skipped: {e}", store_id)

        self.events.success(f"Store ready at {public_url}", store_id)
        if homepage_set:
            self._announce_credential(store_id, credential)
        return homepage_set

    async def _lookup_page(self, wp: WordPressCLI) -> Optional[str]:
        s = self.settings
        for attempt in range(1, s.PAGE_LOOKUP_MAX_ATTEMPTS + 1):
            page_id = await wp.page_id(s.SHOP_PAGE_SLUG)
            if page_id:
                return page_id
            if attempt < s.PAGE_LOOKUP_MAX_ATTEMPTS:
                await asyncio.sleep(s.PAGE_LOOKUP_INTERVAL)
        return None

    def _announce_credential(self, store_id: str, credential: str):
        if self.settings.DEMO_MODE:
            self.events.warning(f"Admin password: {credential}", store_id)
        else:
            self.events.info(
                f"Admin credentials stored in secret {store_id}/{secret_name(store_id)}", store_id
            )

    # =====================================================================
    # Single-shot operations
    # =====================================================================

    async def upgrade(self, store_id: str):
        """New Helm revision for an existing store, then re-harden."""
        self.events.info(f"Upgrading store: {store_id}...", store_id)
        try:
            await self.helm.upgrade(store_id)
        except HELM_ERRORS as e:
            self.events.error(f"Upgrade failed: {e}", store_id)
            raise
        await harden(self.cluster, self.events, store_id, self.settings)
        self.events.success("Upgrade complete (revision bumped)", store_id)

    async def rollback(self, store_id: str, revision: int = 1):
        self.events.info(f"Rolling back {store_id} to revision {revision}...", store_id)
        try:
            await self.helm.rollback(store_id, revision)
        except HELM_ERRORS as e:
            self.events.error(f"Rollback failed: {e}", store_id)
            raise
        self.events.warning(f"Rollback successful. Reverted to revision {revision}.", store_id)

    async def teardown(self, store_id: str):
        """Uninstall release, delete namespace, delete PVCs. Errors propagate."""
        await self.helm.uninstall(store_id)
        await self.cluster.delete_namespace(store_id)
        await self.cluster.delete_pvcs(store_id)
        self.events.success(f"Deleted {store_id}", store_id)

    async def link_domain(self, store_id: str, domain: str):
        self.events.info(f"Linking custom domain: {domain} to {store_id}...", store_id)
        try:
            await self.cluster.label_namespace(store_id, {"custom-domain": domain})
        except Exception as e:
            self.events.error(f"Link failed: {e}", store_id)
            raise
        self.events.success(f"Domain linked: https://{domain} -> {store_id}", store_id)

    async def list_stores(self) -> list[dict]:
        """Live releases, each with accessUrl (None when no address is known)."""
        try:
            releases = await self.helm.list_releases()
        except (*HELM_ERRORS, ValueError) as e:
            logger.warning(f"Store inventory unavailable: {e}")
            return []

        async def _enrich(release: dict) -> dict:
            namespace = release.get("namespace") or release.get("name", "")
            try:
                address = await self.cluster.get_service_address(
                    namespace, self.settings.PUBLIC_SERVICE_NAME
                )
            except Exception as e:
                logger.debug(f"Address lookup failed for {namespace}: {e}")
                address = None
            return {**release, "accessUrl": f"http://{address}" if address else None}

        return list(await asyncio.gather(*(_enrich(r) for r in releases)))
