"""Readiness pollers for operator-driven convergence.

All waiters share one contract: re-fetch external state every interval,
evaluate a success predicate against it, and give up once the wall-clock
budget is spent. Timing out is a result (TIMED_OUT), not an exception; the
caller decides whether it is fatal. An explicit terminal failure (e.g. an
operator install reporting phase Failed) returns FAILED without waiting out
the budget.

Nothing is cached between polls: every attempt reads fresh cluster state,
since operators may be reconciling the same objects concurrently.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import kube

logger = logging.getLogger(__name__)


class PollOutcome(Enum):
    READY = 'ready'
    TIMED_OUT = 'timed_out'
    FAILED = 'failed'


@dataclass(frozen=True)
class Observation:
    """One fresh read of external state, judged by a predicate."""
    state: str
    ready: bool = False
    failed: bool = False
    detail: str = ''


@dataclass(frozen=True)
class PollSpec:
    """A single convergence condition to observe."""
    resource_kind: str
    resource_key: str
    predicate: Callable[[], Observation]
    timeout: float
    interval: float

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        if self.interval > self.timeout:
            raise ValueError(f"interval ({self.interval}) exceeds timeout ({self.timeout})")


@dataclass(frozen=True)
class PollResult:
    """Outcome of a poll."""
    outcome: PollOutcome
    elapsed: float
    last_state: str
    detail: str = ''

    @property
    def ok(self) -> bool:
        return self.outcome is PollOutcome.READY


def poll(spec: PollSpec, progress_every: Optional[float] = None) -> PollResult:
    """Evaluate spec.predicate until ready, failed, or out of time.

    Args:
        spec: Condition to observe
        progress_every: Log current state at most once per this many seconds

    Returns:
        PollResult; TIMED_OUT once elapsed reaches spec.timeout
    """
    start = time.time()
    deadline = start + spec.timeout
    last_progress = start

    while True:
        try:
            observation = spec.predicate()
        except Exception as e:
            # A failed lookup is not-ready, never terminal
            logger.debug(f"{spec.resource_kind} {spec.resource_key}: {e}")
            observation = Observation('Error', detail=str(e))
        now = time.time()
        elapsed = now - start

        if observation.ready:
            return PollResult(PollOutcome.READY, elapsed, observation.state, observation.detail)
        if observation.failed:
            return PollResult(PollOutcome.FAILED, elapsed, observation.state, observation.detail)
        if now >= deadline:
            return PollResult(PollOutcome.TIMED_OUT, elapsed, observation.state, observation.detail)

        if progress_every and now - last_progress >= progress_every:
            logger.info(f"   {spec.resource_kind} {spec.resource_key} status: "
                        f"{observation.state} ({elapsed:.0f}s elapsed)")
            last_progress = now

        time.sleep(min(spec.interval, deadline - now))


class Waiter:
    """Base for waiters: subclasses provide describe() and spec()."""

    progress_every: Optional[float] = None

    def describe(self) -> str:
        raise NotImplementedError

    def spec(self) -> PollSpec:
        raise NotImplementedError

    def wait(self) -> PollResult:
        """Block until the condition converges or the budget is spent."""
        spec = self.spec()
        logger.info(f"Waiting for {self.describe()} (timeout: {spec.timeout:g}s)...")
        result = poll(spec, progress_every=self.progress_every)

        if result.outcome is PollOutcome.READY:
            logger.info(f"{self.describe()} ready after {result.elapsed:.0f}s")
        elif result.outcome is PollOutcome.FAILED:
            detail = f": {result.detail}" if result.detail else ''
            logger.error(f"{self.describe()} failed ({result.last_state}){detail}")
        else:
            logger.warning(f"Timed out after {spec.timeout:g}s waiting for {self.describe()} "
                           f"(last state: {result.last_state})")
        return result


@dataclass
class CRDEstablished(Waiter):
    """CRD exists and reports Established=True.

    Two phases share one budget: wait for the definition to appear (an
    installer may still be registering it), then for the Established
    condition.
    """
    name: str
    timeout: float = 60
    interval: float = 2

    def describe(self) -> str:
        return f"CRD {self.name}"

    def spec(self) -> PollSpec:
        detected = False

        def predicate() -> Observation:
            nonlocal detected
            crd = kube.get_resource('crd', self.name)
            if crd is None:
                return Observation('NotFound')
            if not detected:
                logger.info(f"CRD {self.name} detected, waiting for it to become Established...")
                detected = True
            status = kube.condition_status(crd, 'Established')
            if status == 'True':
                return Observation('Established', ready=True)
            return Observation(f"Established={status or 'Unknown'}")

        return PollSpec('CustomResourceDefinition', self.name, predicate, self.timeout, self.interval)


@dataclass
class CSVSucceeded(Waiter):
    """Operator ClusterServiceVersion reaches phase Succeeded.

    Phase Failed is terminal and surfaces status.message. Any other phase,
    including not-found, is retried.
    """
    name: str
    namespace: str = 'kuadrant-system'
    timeout: float = 180
    interval: float = 5
    progress_every: Optional[float] = 30

    def describe(self) -> str:
        return f"CSV {self.name}"

    def spec(self) -> PollSpec:
        def predicate() -> Observation:
            csv = kube.get_resource('csv', self.name, self.namespace)
            if csv is None:
                return Observation('NotFound')
            status = csv.get('status', {})
            phase = status.get('phase') or 'Unknown'
            if phase == 'Succeeded':
                return Observation(phase, ready=True)
            if phase == 'Failed':
                return Observation(phase, failed=True, detail=status.get('message', ''))
            return Observation(phase)

        return PollSpec('ClusterServiceVersion', f"{self.namespace}/{self.name}",
                        predicate, self.timeout, self.interval)


def pod_settled(pod: dict) -> bool:
    """True if a pod is completed, or running with no container waiting."""
    status = pod.get('status', {})
    phase = status.get('phase')
    if phase == 'Succeeded':
        return True
    if phase != 'Running':
        return False
    for container in status.get('containerStatuses', []) or []:
        if 'waiting' in (container.get('state') or {}):
            return False
    return True


@dataclass
class PodsReady(Waiter):
    """Every pod in a namespace is running or completed.

    A namespace that does not exist has nothing to wait for and counts as
    ready immediately. A failed namespace or pod lookup is not-ready.
    """
    namespace: str
    timeout: float = 120
    interval: float = 5

    def describe(self) -> str:
        return f"pods in {self.namespace}"

    def spec(self) -> PollSpec:
        def predicate() -> Observation:
            if not kube.namespace_exists(self.namespace):
                return Observation('NamespaceAbsent', ready=True)
            pods = kube.list_resources('pods', self.namespace, strict=True)
            pending = [p.get('metadata', {}).get('name', '?') for p in pods if not pod_settled(p)]
            if not pending:
                return Observation(f"{len(pods)} pods ready", ready=True)
            return Observation(f"{len(pending)}/{len(pods)} not ready", detail=', '.join(pending))

        return PollSpec('Pod', f"{self.namespace}/*", predicate, self.timeout, self.interval)


def webhook_services(namespace: str) -> list[tuple[str, str]]:
    """Services in namespace backing any validating webhook, deduplicated."""
    services = set()
    for config in kube.list_resources('validatingwebhookconfigurations'):
        for hook in config.get('webhooks', []) or []:
            service = (hook.get('clientConfig') or {}).get('service')
            if service and service.get('namespace') == namespace:
                services.add((service['namespace'], service['name']))
    return sorted(services)


def endpoints_ready(namespace: str, name: str) -> bool:
    """True if a service's Endpoints carry at least one ready address."""
    endpoints = kube.get_resource('endpoints', name, namespace) or {}
    return any(subset.get('addresses') for subset in endpoints.get('subsets', []) or [])


@dataclass
class WebhooksReady(Waiter):
    """Every validating-webhook service in a namespace has ready endpoints.

    No webhook services at all is vacuous success.
    """
    namespace: str
    timeout: float = 60
    interval: float = 2

    def describe(self) -> str:
        return f"validating webhooks in {self.namespace}"

    def spec(self) -> PollSpec:
        def predicate() -> Observation:
            services = webhook_services(self.namespace)
            if not services:
                logger.warning(f"No validating webhooks found in namespace {self.namespace}")
                return Observation('NoWebhooks', ready=True)

            not_ready = []
            for ns, name in services:
                if endpoints_ready(ns, name):
                    logger.debug(f"Webhook service {ns}/{name} has ready endpoints")
                else:
                    logger.info(f"Webhook service {ns}/{name} not ready")
                    not_ready.append(f"{ns}/{name}")
            if not not_ready:
                return Observation(f"{len(services)} services ready", ready=True)
            return Observation(f"{len(not_ready)}/{len(services)} services without endpoints",
                               detail=', '.join(not_ready))

        return PollSpec('ValidatingWebhookConfiguration', f"{self.namespace}/*",
                        predicate, self.timeout, self.interval)


@dataclass
class ConditionTrue(Waiter):
    """A named status condition on an object reports True."""
    kind: str
    name: str
    namespace: Optional[str]
    condition: str
    timeout: float = 300
    interval: float = 5

    def describe(self) -> str:
        return f"{self.kind} {self.name} {self.condition}"

    def spec(self) -> PollSpec:
        def predicate() -> Observation:
            obj = kube.get_resource(self.kind, self.name, self.namespace)
            if obj is None:
                return Observation('NotFound')
            status = kube.condition_status(obj, self.condition)
            if status == 'True':
                return Observation(f"{self.condition}=True", ready=True)
            return Observation(f"{self.condition}={status or 'Unknown'}")

        key = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return PollSpec(self.kind, key, predicate, self.timeout, self.interval)


def rollout_complete(deployment: dict) -> tuple[bool, str]:
    """Mirror `kubectl rollout status` for a Deployment object."""
    spec_replicas = deployment.get('spec', {}).get('replicas', 1)
    generation = deployment.get('metadata', {}).get('generation', 0)
    status = deployment.get('status', {})
    updated = status.get('updatedReplicas', 0)
    total = status.get('replicas', 0)
    available = status.get('availableReplicas', 0)

    if status.get('observedGeneration', 0) < generation:
        return False, 'waiting for spec update to be observed'
    if updated < spec_replicas:
        return False, f"{updated} of {spec_replicas} updated replicas"
    if total > updated:
        return False, f"{total - updated} old replicas pending termination"
    if available < updated:
        return False, f"{available} of {updated} updated replicas available"
    return True, f"{available} replicas available"


@dataclass
class RolloutComplete(Waiter):
    """A Deployment finishes rolling out."""
    deployment: str
    namespace: str
    timeout: float = 60
    interval: float = 2

    def describe(self) -> str:
        return f"rollout of {self.namespace}/{self.deployment}"

    def spec(self) -> PollSpec:
        def predicate() -> Observation:
            obj = kube.get_resource('deployment', self.deployment, self.namespace)
            if obj is None:
                return Observation('NotFound')
            done, state = rollout_complete(obj)
            return Observation(state, ready=done)

        return PollSpec('Deployment', f"{self.namespace}/{self.deployment}",
                        predicate, self.timeout, self.interval)
