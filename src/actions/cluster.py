"""Namespace, CRD cleanup, and deployment restart actions."""

import logging
import re
import time
from dataclasses import dataclass

import kube
from common import ActionResult
from config import DeployConfig

logger = logging.getLogger(__name__)


@dataclass
class CreateNamespacesAction:
    """Create the platform namespaces. Existing namespaces are fine."""
    name: str

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()
        created, existing, failed = [], [], []

        for namespace in config.namespaces:
            try:
                if kube.create_namespace(namespace):
                    logger.info(f"[{self.name}] Created namespace {namespace}")
                    created.append(namespace)
                else:
                    logger.info(f"[{self.name}] Namespace {namespace} already exists")
                    existing.append(namespace)
            except kube.KubeError as e:
                logger.error(f"[{self.name}] {e}")
                failed.append(namespace)

        if failed:
            return ActionResult(
                success=False,
                message=f"Failed to create namespaces: {', '.join(failed)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"{len(created)} created, {len(existing)} already existed",
            duration=time.time() - start
        )


@dataclass
class CleanupLeftoverCRDsAction:
    """Remove stale Kuadrant CRDs from a previous partial install.

    Skipped when the Kuadrant operator is already installed, since its CRDs
    are then live.
    """
    name: str
    installed_csv: str = 'kuadrant-operator.v1.3.0'

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()

        if kube.resource_exists('csv', self.installed_csv, config.kuadrant_namespace):
            return ActionResult(
                success=True,
                message="Kuadrant operator already installed, skipping CRD cleanup",
                duration=time.time() - start
            )

        pattern = re.compile(config.leftover_crd_pattern)
        leftovers = [
            crd['metadata']['name'] for crd in kube.list_resources('crd')
            if pattern.search(crd.get('metadata', {}).get('name', ''))
        ]
        if not leftovers:
            return ActionResult(
                success=True,
                message="No leftover CRDs",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Found {len(leftovers)} leftover CRDs, cleaning up before installation...")
        for crd in leftovers:
            try:
                kube.delete_resource('crd', crd, timeout='30s')
            except kube.KubeError as e:
                logger.warning(f"[{self.name}] {e}")
        time.sleep(config.leftover_cleanup_pause)

        return ActionResult(
            success=True,
            message=f"Removed leftover CRDs: {', '.join(leftovers)}",
            duration=time.time() - start
        )


@dataclass
class RestartDeploymentAction:
    """Rollout-restart a deployment so it re-reads its configuration."""
    name: str
    deployment: str
    namespace: str

    def run(self, _config: DeployConfig, _context) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Restarting {self.namespace}/{self.deployment}...")
        try:
            kube.rollout_restart(self.deployment, self.namespace)
        except kube.KubeError as e:
            return ActionResult(
                success=False,
                message=str(e),
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"Restarted {self.deployment}",
            duration=time.time() - start
        )
