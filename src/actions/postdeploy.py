"""Best-effort runtime corrections applied after the main sequence.

None of these gate the run: a failure is reported as a warning and the
deployment continues.
"""

import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

import kube
from common import ActionResult
from config import DeployConfig

logger = logging.getLogger(__name__)


def derive_token_audience(token: Optional[str]) -> Optional[str]:
    """Extract the first audience from a JWT's payload without verifying it."""
    if not token:
        return None
    parts = token.split('.')
    if len(parts) < 2:
        return None
    payload = parts[1] + '=' * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return None
    if not isinstance(claims, dict):
        return None

    aud = claims.get('aud')
    if isinstance(aud, list):
        aud = aud[0] if aud else None
    if not isinstance(aud, str) or not aud or aud == 'null':
        return None
    return aud


@dataclass
class PatchAudienceAction:
    """Point the MaaS API AuthPolicy at the cluster's token audience.

    The audience is read from a freshly minted service account token. If it
    cannot be derived the patch is skipped with a warning.
    """
    name: str
    service_account: str = 'default'
    token_duration: str = '10m'

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()

        audience = derive_token_audience(kube.create_token(self.service_account, self.token_duration))
        if not audience:
            logger.warning(f"[{self.name}] Could not detect audience, skipping AuthPolicy patch. "
                           "You may need to configure the audience manually.")
            return ActionResult(
                success=True,
                message="Audience not detected, patch skipped",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Detected audience: {audience}")
        ops = [{'op': 'replace', 'path': config.audience_path, 'value': audience}]
        try:
            kube.patch_resource('authpolicy', config.audience_policy, ops,
                                patch_type='json', namespace=config.api_namespace)
        except kube.KubeError as e:
            return ActionResult(
                success=False,
                message=f"Failed to patch AuthPolicy (may need manual configuration): {e}",
                duration=time.time() - start,
                context_updates={'audience': audience}
            )

        return ActionResult(
            success=True,
            message=f"AuthPolicy {config.audience_policy} audience set to {audience}",
            duration=time.time() - start,
            context_updates={'audience': audience}
        )


@dataclass
class PinImageAction:
    """Pin the Limitador image to a known-good build that exposes metrics."""
    name: str

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()
        patch = {'spec': {'image': config.limitador_image, 'version': ''}}
        try:
            kube.patch_resource('limitador', config.limitador_name, patch,
                                patch_type='merge', namespace=config.kuadrant_namespace)
        except kube.KubeError as e:
            return ActionResult(
                success=False,
                message=f"Could not update Limitador image (may not be critical): {e}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"Limitador image set to {config.limitador_image}",
            duration=time.time() - start
        )


@dataclass
class TemporaryWorkaroundsAction:
    """Work around stale operator webhook caches and an over-restrictive policy.

    TODO: delete this action (and the 'workarounds' stage) once the Kuadrant
    operators refresh their webhook configuration without a restart and ODH
    ships a NetworkPolicy that admits webhook traffic.
    """
    name: str

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()
        ns = config.kuadrant_namespace

        steps = [
            ('Removed NetworkPolicy',
             lambda: kube.delete_resource('networkpolicy', config.restrictive_network_policy,
                                          namespace=config.serving_namespace)),
            ('Restarted Kuadrant operator',
             lambda: kube.delete_by_label('pod', config.operator_pod_selector, namespace=ns)),
            ('Restarted Authorino operator',
             lambda: kube.rollout_restart(config.authorino_operator_deployment, ns)),
            ('Restarted Limitador operator',
             lambda: kube.rollout_restart(config.limitador_operator_deployment, ns)),
        ]

        done, skipped = [], []
        for label, step in steps:
            try:
                step()
                logger.info(f"[{self.name}] {label}")
                done.append(label)
            except kube.KubeError as e:
                logger.warning(f"[{self.name}] {label} skipped: {e}")
                skipped.append(label)

        message = f"{len(done)}/{len(steps)} workarounds applied"
        if skipped:
            message += f" (skipped: {', '.join(skipped)})"
        return ActionResult(
            success=not skipped,
            message=message,
            duration=time.time() - start
        )
