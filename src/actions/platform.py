"""Platform identity, cluster domain, and Gateway API feature gate actions."""

import logging
import os
import time
from dataclasses import dataclass

import kube
from common import ActionResult, tool_version
from config import DeployConfig
from versions import version_at_least

logger = logging.getLogger(__name__)

TOOLS = {
    'kubectl': ['kubectl', 'version', '--client'],
    'oc': ['oc', 'version', '--client'],
    'kustomize': ['kustomize', 'version'],
    'git': ['git', '--version'],
}


@dataclass
class VerifyPlatformAction:
    """Verify the target cluster is OpenShift and report local tooling."""
    name: str
    report_tools: bool = True

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()

        if self.report_tools:
            logger.info(f"[{self.name}] Required tools:")
            for tool, cmd in TOOLS.items():
                logger.info(f"[{self.name}]   - {tool}: {tool_version(cmd)}")

        if not kube.api_group_available(config.required_api_group):
            return ActionResult(
                success=False,
                message=f"API group {config.required_api_group} not served; this deployment is for OpenShift clusters only",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Note: OpenShift Service Mesh is installed automatically when the "
                    "GatewayClass is created. If the Gateway stays in 'Waiting for controller', "
                    "install the Service Mesh operator from OperatorHub.")
        return ActionResult(
            success=True,
            message=f"{config.required_api_group} available",
            duration=time.time() - start
        )


@dataclass
class ResolveClusterDomainAction:
    """Look up the cluster's external domain for manifest rendering.

    CLUSTER_DOMAIN in the environment takes precedence over the lookup.
    """
    name: str

    def run(self, _config: DeployConfig, _context) -> ActionResult:
        start = time.time()

        domain = os.environ.get('CLUSTER_DOMAIN', '').strip()
        source = 'environment'
        if not domain:
            domain = kube.jsonpath('ingresses.config.openshift.io', 'cluster', '{.spec.domain}') or ''
            source = 'ingresses.config.openshift.io/cluster'

        if not domain:
            return ActionResult(
                success=False,
                message="Failed to retrieve cluster domain from OpenShift",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Cluster domain: {domain} (from {source})")
        return ActionResult(
            success=True,
            message=f"Cluster domain {domain}",
            duration=time.time() - start,
            context_updates={'cluster_domain': domain}
        )


@dataclass
class FeatureGateAction:
    """Enable Gateway API feature gates on OpenShift older than the minimum.

    An undeterminable version takes the conservative branch and patches. The
    settle delay afterwards is a fixed sleep: feature gate reconciliation has
    no observable completion signal.
    """
    name: str

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()

        version = kube.jsonpath('clusterversion', 'version', '{.status.desired.version}') or 'unknown'
        logger.info(f"[{self.name}] OpenShift version: {version}")

        supported = version_at_least(version, config.gateway_api_min_version)
        if supported:
            return ActionResult(
                success=True,
                message=f"OpenShift {version} supports Gateway API via GatewayClass (no feature gates needed)",
                duration=time.time() - start,
                context_updates={'platform_version': version}
            )

        if supported is None:
            logger.warning(f"[{self.name}] Could not determine OpenShift version, applying feature gates to be safe")
        else:
            logger.info(f"[{self.name}] Applying Gateway API feature gates for OpenShift < {config.gateway_api_min_version}")

        patch = {
            'spec': {
                'featureSet': 'CustomNoUpgrade',
                'customNoUpgrade': {'enabled': list(config.feature_gates)},
            }
        }
        try:
            kube.patch_resource('featuregate', 'cluster', patch, patch_type='merge')
        except kube.KubeError as e:
            return ActionResult(
                success=False,
                message=f"Failed to patch feature gates: {e}",
                duration=time.time() - start,
                context_updates={'platform_version': version}
            )

        logger.info(f"[{self.name}] Waiting for feature gates to reconcile ({config.feature_gate_settle:g} seconds)...")
        time.sleep(config.feature_gate_settle)

        return ActionResult(
            success=True,
            message=f"Enabled {', '.join(config.feature_gates)}",
            duration=time.time() - start,
            context_updates={'platform_version': version, 'feature_gates_applied': True}
        )
