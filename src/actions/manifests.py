"""Manifest rendering and apply actions."""

import logging
import time
from dataclasses import dataclass

import requests

import kube
from common import ActionResult, envsubst, kustomize_build, run_command
from config import DeployConfig, DependencySource

logger = logging.getLogger(__name__)


def _count_applied(output: str) -> int:
    return len([line for line in output.splitlines() if line.strip()])


@dataclass
class ApplyManifestAction:
    """Render and apply a manifest file or kustomization.

    With render=True, $VAR references are substituted from the run context
    (CLUSTER_DOMAIN included) before applying.
    """
    name: str
    path: str  # relative to project root
    kustomize: bool = False
    render: bool = False
    server_side: bool = False
    force_conflicts: bool = False

    def run(self, config: DeployConfig, context) -> ActionResult:
        start = time.time()
        source = config.path(self.path)

        if not source.exists():
            return ActionResult(
                success=False,
                message=f"Manifest not found: {source}",
                duration=time.time() - start
            )

        if self.kustomize:
            ok, text = kustomize_build(source)
            if not ok:
                return ActionResult(success=False, message=text, duration=time.time() - start)
        else:
            text = source.read_text(encoding="utf-8")

        if self.render:
            text = envsubst(text, context.env())

        logger.info(f"[{self.name}] Applying {self.path}...")
        try:
            out = kube.apply_manifest(text, server_side=self.server_side, force_conflicts=self.force_conflicts)
        except kube.KubeError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        return ActionResult(
            success=True,
            message=f"Applied {_count_applied(out)} resources from {self.path}",
            duration=time.time() - start
        )


def install_dependency(source: DependencySource, config: DeployConfig, env: dict) -> tuple[bool, str]:
    """Install a prerequisite from its configured source.

    Returns:
        (success, message) tuple
    """
    if source.kind == 'script':
        script = config.path(source.target)
        if not script.exists():
            return False, f"Installer not found: {script}"
        rc, _, err = run_command([str(script)] + list(source.args), cwd=config.project_root,
                                 timeout=1200, capture=True, env=env)
        if rc != 0:
            return False, f"{source.target} {' '.join(source.args)} failed: {err.strip()[-300:]}"
        return True, f"Ran {source.target} {' '.join(source.args)}"

    if source.kind == 'url':
        try:
            resp = requests.get(source.target, timeout=60)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            return False, f"Cannot fetch {source.target}: {e}"
        text = resp.text
    elif source.kind == 'kustomize':
        ok, text = kustomize_build(config.path(source.target))
        if not ok:
            return False, text
    else:
        path = config.path(source.target)
        if not path.exists():
            return False, f"Manifest not found: {path}"
        text = path.read_text(encoding="utf-8")

    try:
        out = kube.apply_manifest(text, server_side=source.server_side, force_conflicts=source.server_side)
    except kube.KubeError as e:
        return False, str(e)
    return True, f"Applied {_count_applied(out)} resources from {source.target}"


@dataclass
class InstallDependencyAction:
    """Install a named prerequisite (cert-manager, kuadrant, odh)."""
    name: str
    dependency: str

    def run(self, config: DeployConfig, context) -> ActionResult:
        start = time.time()

        source = config.dependencies.get(self.dependency)
        if source is None:
            return ActionResult(
                success=False,
                message=f"No install source configured for '{self.dependency}'",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Installing {self.dependency} ({source.kind}: {source.target})...")
        ok, message = install_dependency(source, config, context.env())
        return ActionResult(success=ok, message=message, duration=time.time() - start)


@dataclass
class EnsureServingPlatformAction:
    """Install the KServe serving platform unless its CRDs are already present.

    Detection is by capability (the CRD exists), not by version.
    """
    name: str
    dependency: str = 'odh'

    def run(self, config: DeployConfig, context) -> ActionResult:
        start = time.time()

        if kube.resource_exists('crd', config.serving_crd):
            return ActionResult(
                success=True,
                message="KServe CRDs already present (ODH/RHOAI detected)",
                duration=time.time() - start,
                context_updates={'serving_installed': False}
            )

        logger.info(f"[{self.name}] KServe not detected. Deploying ODH KServe components...")
        result = InstallDependencyAction(name=self.name, dependency=self.dependency).run(config, context)
        if result.success:
            result.context_updates = {'serving_installed': True}
        result.duration = time.time() - start
        return result
