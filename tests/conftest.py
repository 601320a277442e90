"""Shared pytest fixtures for maas-deployer tests."""

import base64
import json
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


class FakeClock:
    """Stands in for the time module: sleep() advances time() instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds

    def elapsed(self, start: float = 1000.0) -> float:
        return self.now - start


def make_token(claims: dict) -> str:
    """Build an unsigned JWT carrying claims."""
    def _b64(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip('=')
    return f"{_b64({'alg': 'RS256'})}.{_b64(claims)}.signature"


@pytest.fixture
def clock(monkeypatch):
    """Fake clock installed into the readiness module."""
    import readiness
    fake = FakeClock()
    monkeypatch.setattr(readiness, 'time', fake)
    return fake


@pytest.fixture
def project_root(tmp_path):
    """Minimal MaaS repository layout with manifests and an installer."""
    networking = tmp_path / 'deployment/base/networking'
    networking.mkdir(parents=True)
    (networking / 'gateway-api.yaml').write_text("""
apiVersion: gateway.networking.k8s.io/v1
kind: Gateway
metadata:
  name: maas-default-gateway
  namespace: openshift-ingress
spec:
  listeners:
    - name: https
      hostname: maas.${CLUSTER_DOMAIN}
""")
    (networking / 'kuadrant.yaml').write_text("""
apiVersion: kuadrant.io/v1beta1
kind: Kuadrant
metadata:
  name: kuadrant
  namespace: kuadrant-system
""")
    for name in ('maas-api', 'policies', 'observability'):
        (tmp_path / 'deployment/base' / name).mkdir(parents=True)

    scripts = tmp_path / 'deployment/scripts'
    scripts.mkdir(parents=True)
    installer = scripts / 'install-dependencies.sh'
    installer.write_text("#!/bin/sh\nexit 0\n")
    installer.chmod(0o755)
    return tmp_path


class FakeCluster:
    """In-memory stand-in for the kube module where everything is converged."""

    def __init__(self, domain='apps.example.com', version='4.20.0'):
        self.domain = domain
        self.version = version
        self.applied = []
        self.patched = []
        self.restarted = []
        self.deleted = []
        self.namespaces_created = []

    def install(self, monkeypatch):
        import kube
        for name in ('get_resource', 'list_resources', 'resource_exists', 'namespace_exists',
                     'api_group_available', 'jsonpath', 'create_namespace', 'apply_manifest',
                     'patch_resource', 'delete_resource', 'delete_by_label', 'rollout_restart',
                     'create_token'):
            monkeypatch.setattr(kube, name, getattr(self, name))
        return self

    def get_resource(self, kind, name, namespace=None):
        if kind == 'crd':
            return {'status': {'conditions': [{'type': 'Established', 'status': 'True'}]}}
        if kind == 'csv':
            return {'status': {'phase': 'Succeeded'}}
        if kind == 'deployment':
            return {
                'metadata': {'generation': 2},
                'spec': {'replicas': 1},
                'status': {'observedGeneration': 2, 'replicas': 1, 'updatedReplicas': 1,
                           'availableReplicas': 1},
            }
        if kind == 'endpoints':
            return {'subsets': [{'addresses': [{'ip': '10.0.0.5'}]}]}
        return {'status': {'conditions': [
            {'type': 'Accepted', 'status': 'True'},
            {'type': 'Programmed', 'status': 'True'},
            {'type': 'Enforced', 'status': 'True'},
        ]}}

    def list_resources(self, kind, namespace=None, selector=None, strict=False):
        if kind == 'pods':
            return [{'metadata': {'name': f'{namespace}-pod'}, 'status': {'phase': 'Running'}}]
        if kind == 'validatingwebhookconfigurations':
            return [{'webhooks': [{'clientConfig': {'service': {
                'namespace': 'kuadrant-system', 'name': 'authorino-webhooks'}}}]}]
        return []

    def resource_exists(self, kind, name, namespace=None):
        return True

    def namespace_exists(self, namespace):
        return True

    def api_group_available(self, group):
        return True

    def jsonpath(self, kind, name, path, namespace=None):
        if kind == 'ingresses.config.openshift.io':
            return self.domain
        if kind == 'clusterversion':
            return self.version
        return None

    def create_namespace(self, namespace):
        self.namespaces_created.append(namespace)
        return True

    def apply_manifest(self, text, server_side=False, force_conflicts=False, timeout=300):
        self.applied.append(text)
        return 'resource/applied serverside-applied\n'

    def patch_resource(self, kind, name, patch, patch_type='merge', namespace=None):
        self.patched.append((kind, name, patch_type, patch))

    def delete_resource(self, kind, name, namespace=None, timeout=''):
        self.deleted.append((kind, name))

    def delete_by_label(self, kind, selector, namespace=None):
        self.deleted.append((kind, selector))

    def rollout_restart(self, deployment, namespace):
        self.restarted.append(deployment)

    def create_token(self, service_account='default', duration='10m', namespace=None):
        return make_token({'aud': ['https://kubernetes.default.svc']})


@pytest.fixture
def fake_cluster(monkeypatch):
    """A converged cluster patched into the kube module."""
    return FakeCluster().install(monkeypatch)
