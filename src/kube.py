"""Cluster access through the kubectl binary.

Queries do not raise: a missing object or a failed lookup reads as None (or an
empty list) so pollers can treat it as "not ready yet". Where "absent" would
read as success (namespace_exists, strict list_resources), a failed lookup
raises KubeError instead. Mutations raise KubeError when kubectl exits
non-zero; callers decide whether that matters.
"""

import json
import logging
from typing import Optional

from common import run_command

logger = logging.getLogger(__name__)

KUBECTL = 'kubectl'


class KubeError(Exception):
    """kubectl call failed."""


def kubectl(args: list[str], timeout: int = 60, input_text: Optional[str] = None) -> tuple[int, str, str]:
    """Run kubectl with args and return (returncode, stdout, stderr)."""
    return run_command([KUBECTL] + args, timeout=timeout, input_text=input_text)


def _scope(namespace: Optional[str]) -> list[str]:
    return ['-n', namespace] if namespace else []


def get_resource(kind: str, name: str, namespace: Optional[str] = None) -> Optional[dict]:
    """Fetch a single object as a dict, or None if absent/unreadable."""
    rc, out, err = kubectl(['get', kind, name] + _scope(namespace) + ['-o', 'json'])
    if rc != 0:
        logger.debug(f"get {kind}/{name}: {err.strip()}")
        return None
    try:
        return json.loads(out)
    except json.JSONDecodeError:
        logger.debug(f"get {kind}/{name}: unparseable output")
        return None


def list_resources(kind: str, namespace: Optional[str] = None, selector: Optional[str] = None,
                   strict: bool = False) -> list[dict]:
    """List objects of a kind. Empty list on failure, or KubeError if strict."""
    args = ['get', kind] + _scope(namespace)
    if selector:
        args += ['-l', selector]
    rc, out, err = kubectl(args + ['-o', 'json'])
    if rc != 0:
        if strict:
            raise KubeError(f"list {kind}: {err.strip()}")
        logger.debug(f"list {kind}: {err.strip()}")
        return []
    try:
        return json.loads(out).get('items', [])
    except json.JSONDecodeError:
        if strict:
            raise KubeError(f"list {kind}: unparseable output")
        return []


def resource_exists(kind: str, name: str, namespace: Optional[str] = None) -> bool:
    rc, _, _ = kubectl(['get', kind, name] + _scope(namespace), timeout=30)
    return rc == 0


def namespace_exists(namespace: str) -> bool:
    """True if present, False if NotFound. Raises KubeError when the lookup fails."""
    rc, _, err = kubectl(['get', 'namespace', namespace], timeout=30)
    if rc == 0:
        return True
    if 'NotFound' in err or 'not found' in err:
        return False
    raise KubeError(f"get namespace {namespace}: {err.strip()}")


def api_group_available(group: str) -> bool:
    """Check whether an API group is served (e.g. route.openshift.io)."""
    rc, out, _ = kubectl(['api-resources', '--api-group', group, '-o', 'name'], timeout=60)
    return rc == 0 and bool(out.strip())


def condition_status(obj: Optional[dict], condition_type: str) -> Optional[str]:
    """Return status ('True'/'False'/'Unknown') of a status condition."""
    if not obj:
        return None
    for cond in obj.get('status', {}).get('conditions', []) or []:
        if cond.get('type') == condition_type:
            return cond.get('status')
    return None


def jsonpath(kind: str, name: str, path: str, namespace: Optional[str] = None) -> Optional[str]:
    """Structured path query against a single object."""
    rc, out, _ = kubectl(['get', kind, name] + _scope(namespace) + ['-o', f'jsonpath={path}'])
    if rc != 0:
        return None
    return out.strip()


def create_namespace(namespace: str) -> bool:
    """Create namespace. Returns True if created, False if it already existed."""
    rc, _, err = kubectl(['create', 'namespace', namespace])
    if rc == 0:
        return True
    if 'AlreadyExists' in err or 'already exists' in err:
        return False
    raise KubeError(f"create namespace {namespace}: {err.strip()}")


def apply_manifest(text: str, server_side: bool = False, force_conflicts: bool = False,
                   timeout: int = 300) -> str:
    """Apply manifests from text via stdin. Returns kubectl output."""
    args = ['apply']
    if server_side:
        args.append('--server-side=true')
    if force_conflicts:
        args.append('--force-conflicts')
    rc, out, err = kubectl(args + ['-f', '-'], timeout=timeout, input_text=text)
    if rc != 0:
        raise KubeError(f"apply failed: {err.strip()}")
    return out


def patch_resource(kind: str, name: str, patch, patch_type: str = 'merge',
                   namespace: Optional[str] = None) -> None:
    """Patch an object. patch is a dict (merge) or list of ops (json)."""
    args = ['patch', kind, name] + _scope(namespace) + ['--type', patch_type, '-p', json.dumps(patch)]
    rc, _, err = kubectl(args)
    if rc != 0:
        raise KubeError(f"patch {kind}/{name}: {err.strip()}")


def delete_resource(kind: str, name: str, namespace: Optional[str] = None, timeout: str = '') -> None:
    args = ['delete', kind, name] + _scope(namespace)
    if timeout:
        args.append(f'--timeout={timeout}')
    rc, _, err = kubectl(args, timeout=120)
    if rc != 0:
        raise KubeError(f"delete {kind}/{name}: {err.strip()}")


def delete_by_label(kind: str, selector: str, namespace: Optional[str] = None) -> None:
    rc, out, err = kubectl(['delete', kind, '-l', selector] + _scope(namespace), timeout=120)
    if rc != 0 or 'No resources found' in out + err:
        raise KubeError(f"delete {kind} -l {selector}: {(err or out).strip()}")


def rollout_restart(deployment: str, namespace: str) -> None:
    rc, _, err = kubectl(['rollout', 'restart', f'deployment/{deployment}', '-n', namespace])
    if rc != 0:
        raise KubeError(f"rollout restart {deployment}: {err.strip()}")


def create_token(service_account: str = 'default', duration: str = '10m',
                 namespace: Optional[str] = None) -> Optional[str]:
    """Mint a short-lived service account token."""
    rc, out, _ = kubectl(['create', 'token', service_account, f'--duration={duration}'] + _scope(namespace))
    if rc != 0 or not out.strip():
        return None
    return out.strip()
