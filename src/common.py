"""Common utilities and types for deployment automation."""

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r'\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))')


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except Exception as e:
        return -1, '', str(e)


def envsubst(text: str, env: Optional[dict] = None) -> str:
    """Substitute $VAR and ${VAR} references like GNU envsubst.

    Unset variables expand to the empty string.
    """
    values = os.environ if env is None else env

    def _replace(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        return str(values.get(name, ''))

    return _ENV_REF.sub(_replace, text)


def kustomize_build(path: Path, timeout: int = 120) -> tuple[bool, str]:
    """Render a kustomization directory.

    Returns:
        (success, rendered manifests or error message) tuple
    """
    rc, out, err = run_command(['kustomize', 'build', str(path)], timeout=timeout)
    if rc != 0:
        return False, f"kustomize build {path} failed: {err.strip()}"
    return True, out


def tool_version(cmd: list[str]) -> str:
    """Return first line of a tool's version output, or 'not found'."""
    rc, out, _ = run_command(cmd, timeout=10)
    if rc != 0 or not out.strip():
        return 'not found'
    return out.strip().splitlines()[0]
