"""Final status report. Informational only; never fails the run."""

import logging
import time
from dataclasses import dataclass

import kube
from common import ActionResult
from config import DeployConfig

logger = logging.getLogger(__name__)

# (label, kind, name)
ACCEPTED_POLICIES = [
    ('AuthPolicy', 'authpolicy', 'gateway-auth-policy'),
    ('TokenRateLimitPolicy', 'tokenratelimitpolicy', 'gateway-token-rate-limits'),
]
ENFORCED_POLICIES = [
    ('AuthPolicy', 'authpolicy', 'gateway-auth-policy'),
    ('RateLimitPolicy', 'ratelimitpolicy', 'gateway-rate-limits'),
    ('TokenRateLimitPolicy', 'tokenratelimitpolicy', 'gateway-token-rate-limits'),
    ('TelemetryPolicy', 'telemetrypolicy', 'user-group'),
]


def running_pods(namespace: str) -> int:
    return sum(1 for pod in kube.list_resources('pods', namespace)
               if pod.get('status', {}).get('phase') == 'Running')


def collect_status(config: DeployConfig) -> dict:
    """Snapshot pod counts and gateway/policy conditions."""
    gateway = kube.get_resource('gateway', config.gateway_name, config.gateway_namespace)

    def _condition(kind: str, name: str, condition: str) -> str:
        obj = kube.get_resource(kind, name, config.gateway_namespace)
        return kube.condition_status(obj, condition) or ''

    return {
        'pods_running': {label: running_pods(ns) for label, ns in config.status_namespaces.items()},
        'gateway': {
            'Accepted': kube.condition_status(gateway, 'Accepted') or '',
            'Programmed': kube.condition_status(gateway, 'Programmed') or '',
        },
        'policies_accepted': {label: _condition(kind, name, 'Accepted')
                              for label, kind, name in ACCEPTED_POLICIES},
        'policies_enforced': {label: _condition(kind, name, 'Enforced')
                              for label, kind, name in ENFORCED_POLICIES},
    }


def format_status(status: dict) -> str:
    """Format a status snapshot for display."""
    lines = ["Component Status:"]
    for label, count in status.get('pods_running', {}).items():
        lines.append(f"  {label} pods running: {count}")

    lines.extend(["", "Gateway Status:"])
    for condition, value in status.get('gateway', {}).items():
        lines.append(f"  {condition}: {value or 'unknown'}")

    lines.extend(["", "Policy Status:"])
    for label, value in status.get('policies_accepted', {}).items():
        lines.append(f"  {label}: {value or 'unknown'}")

    lines.extend(["", "Policy Enforcement Status:"])
    for label, value in status.get('policies_enforced', {}).items():
        lines.append(f"  {label} Enforced: {value or 'unknown'}")
    return '\n'.join(lines)


@dataclass
class StatusReportAction:
    """Query pod counts and policy conditions for the final report."""
    name: str

    def run(self, config: DeployConfig, _context) -> ActionResult:
        start = time.time()
        status = collect_status(config)

        pods = status['pods_running']
        summary = ', '.join(f"{label}={count}" for label, count in pods.items())
        logger.info(f"[{self.name}] Running pods: {summary}")

        return ActionResult(
            success=True,
            message=f"Running pods: {summary}",
            duration=time.time() - start,
            context_updates={'status': status}
        )
