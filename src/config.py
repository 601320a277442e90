"""Deployment configuration.

Every stage parameter (namespaces, operator versions, timeouts, manifest
paths) is hard-coded as a DeployConfig default. An optional YAML overlay can
override individual keys:

Resolution order for the overlay:
1. --config <file>
2. deploy.yaml in the project root, if present

The only value supplied by the environment at runtime is the cluster domain,
which is looked up from the cluster (CLUSTER_DOMAIN overrides the lookup).
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""


DEPENDENCY_KINDS = ('script', 'url', 'kustomize', 'file')


@dataclass(frozen=True)
class DependencySource:
    """How a prerequisite operator stack gets installed.

    kind:
      script    - run target (relative to project root) with args
      url       - fetch target over HTTPS and apply it
      kustomize - kustomize build target and apply it
      file      - apply target (relative to project root)
    """
    kind: str
    target: str
    args: tuple = ()
    server_side: bool = False

    def __post_init__(self):
        if self.kind not in DEPENDENCY_KINDS:
            raise ConfigError(f"Unknown dependency kind '{self.kind}'. Expected one of: {', '.join(DEPENDENCY_KINDS)}")


INSTALL_SCRIPT = 'deployment/scripts/install-dependencies.sh'


def _default_dependencies() -> dict:
    return {
        'cert-manager': DependencySource(kind='script', target=INSTALL_SCRIPT, args=('--cert-manager',)),
        'kuadrant': DependencySource(kind='script', target=INSTALL_SCRIPT, args=('--kuadrant',)),
        'odh': DependencySource(kind='script', target=INSTALL_SCRIPT, args=('--odh',)),
    }


@dataclass
class DeployConfig:
    """Parameters for the MaaS deployment sequence."""
    project_root: Path = field(default_factory=Path.cwd)

    # Platform
    required_api_group: str = 'route.openshift.io'
    gateway_api_min_version: str = '4.19.9'
    feature_gates: list = field(default_factory=lambda: ['GatewayAPI', 'GatewayAPIController'])
    feature_gate_settle: float = 30  # no completion signal; fixed sleep

    namespaces: list = field(default_factory=lambda: [
        'opendatahub', 'kserve', 'kuadrant-system', 'llm', 'maas-api',
    ])

    # Kuadrant operator suite (OLM)
    kuadrant_namespace: str = 'kuadrant-system'
    kuadrant_csv: str = 'kuadrant-operator.v1.3.0'  # installed: skip leftover CRD cleanup
    operator_csvs: dict = field(default_factory=lambda: {
        'kuadrant-operator.v1.3.0': 300,
        'authorino-operator.v0.22.0': 60,
        'limitador-operator.v0.16.0': 60,
        'dns-operator.v0.15.0': 60,
    })
    kuadrant_crds: dict = field(default_factory=lambda: {
        'kuadrants.kuadrant.io': 30,
        'authpolicies.kuadrant.io': 10,
        'ratelimitpolicies.kuadrant.io': 10,
        'tokenratelimitpolicies.kuadrant.io': 10,
    })
    leftover_crd_pattern: str = 'kuadrant|authorino|limitador'
    leftover_cleanup_pause: float = 5
    kuadrant_operator_deployment: str = 'kuadrant-operator-controller-manager'
    authorino_operator_deployment: str = 'authorino-operator'
    limitador_operator_deployment: str = 'limitador-operator-controller-manager'
    operator_pod_selector: str = 'control-plane=controller-manager'
    rollout_timeout: float = 60

    # Prerequisites
    dependencies: dict = field(default_factory=_default_dependencies)
    cert_manager_crd: str = 'certificates.cert-manager.io'
    cert_manager_timeout: float = 120
    serving_crd: str = 'llminferenceservices.serving.kserve.io'
    serving_namespace: str = 'opendatahub'
    mesh_crd: str = 'istios.sailoperator.io'
    mesh_timeout: float = 300

    # Gateway
    gateway_name: str = 'maas-default-gateway'
    gateway_namespace: str = 'openshift-ingress'
    gateway_timeout: float = 300

    # Manifests (relative to project root)
    gateway_manifest: str = 'deployment/base/networking/gateway-api.yaml'
    kuadrant_manifest: str = 'deployment/base/networking/kuadrant.yaml'
    maas_api_kustomization: str = 'deployment/base/maas-api'
    policies_kustomization: str = 'deployment/base/policies'
    observability_kustomization: str = 'deployment/base/observability'

    # Post-deploy corrections
    api_namespace: str = 'maas-api'
    audience_policy: str = 'maas-api-auth-policy'
    audience_path: str = '/spec/rules/authentication/openshift-identities/kubernetesTokenReview/audiences/0'
    limitador_name: str = 'limitador'
    limitador_image: str = 'quay.io/kuadrant/limitador:1a28eac1b42c63658a291056a62b5d940596fd4c'
    restrictive_network_policy: str = 'odh-model-controller'

    # Status report: label -> namespace
    status_namespaces: dict = field(default_factory=lambda: {
        'MaaS API': 'maas-api',
        'Kuadrant': 'kuadrant-system',
        'KServe': 'opendatahub',
    })

    def path(self, relative: str) -> Path:
        """Resolve a project-relative path."""
        return self.project_root / relative


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def _parse_dependency(name: str, value) -> DependencySource:
    if not isinstance(value, dict) or 'kind' not in value or 'target' not in value:
        raise ConfigError(f"dependencies.{name}: expected mapping with 'kind' and 'target'")
    return DependencySource(
        kind=value['kind'],
        target=str(value['target']),
        args=tuple(str(a) for a in value.get('args', []) or []),
        server_side=bool(value.get('server_side', False)),
    )


def apply_overrides(config: DeployConfig, overrides: dict, source: str = 'overrides') -> DeployConfig:
    """Apply a mapping of overrides onto config in place."""
    known = {f.name: f for f in fields(config)}
    for key, value in overrides.items():
        if key not in known or key == 'project_root':
            raise ConfigError(f"{source}: unknown setting '{key}'")

        if key == 'dependencies':
            if not isinstance(value, dict):
                raise ConfigError(f"{source}: dependencies must be a mapping")
            merged = dict(config.dependencies)
            merged.update({name: _parse_dependency(name, dep) for name, dep in value.items()})
            config.dependencies = merged
            continue

        current = getattr(config, key)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            if not isinstance(value, type(current)):
                raise ConfigError(
                    f"{source}: '{key}' must be {type(current).__name__}, got {type(value).__name__}"
                )
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{source}: '{key}' must be a number, got {type(value).__name__}")
        setattr(config, key, value)

    _check_timing(config, source)
    return config


# Settle pauses may be 0; wait budgets may not
PAUSES = ('feature_gate_settle', 'leftover_cleanup_pause')
BUDGET_MAPS = ('operator_csvs', 'kuadrant_crds')


def _check_timing(config: DeployConfig, source: str):
    """Reject timing values the pollers cannot run with."""
    def _number(value) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    for key in PAUSES:
        value = getattr(config, key)
        if value < 0:
            raise ConfigError(f"{source}: '{key}' must not be negative, got {value}")

    for f in fields(config):
        if f.name.endswith('_timeout'):
            value = getattr(config, f.name)
            if value <= 0:
                raise ConfigError(f"{source}: '{f.name}' must be positive, got {value}")

    for key in BUDGET_MAPS:
        for name, value in getattr(config, key).items():
            if not _number(value) or value <= 0:
                raise ConfigError(f"{source}: {key}.{name} must be a positive number of seconds, got {value!r}")


def load_config(path: Optional[Path] = None, project_root: Optional[Path] = None) -> DeployConfig:
    """Build DeployConfig from defaults plus an optional YAML overlay."""
    root = Path(project_root) if project_root else Path.cwd()
    config = DeployConfig(project_root=root)

    if path is None:
        default = root / 'deploy.yaml'
        if not default.exists():
            return config
        path = default

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    return apply_overrides(config, _parse_yaml(path), source=str(path))
