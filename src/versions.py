"""Semantic version comparison for feature gating.

Versions are encoded as major*10^6 + minor*10^3 + patch so plain integer
comparison orders them correctly for components up to 999. Anything that
cannot be encoded is indeterminate (None); callers take the conservative
branch rather than erroring.
"""

import re
from typing import Optional

_LEADING_DIGITS = re.compile(r'^(\d+)')
_MAX_COMPONENT = 999


def version_code(version: Optional[str]) -> Optional[int]:
    """Encode 'major.minor.patch' as an integer.

    Missing components count as 0 ('4.19' -> 4019000). Trailing pre-release
    text on a component is ignored ('4.19.0-rc.1' -> 4019000).

    Returns:
        Encoded version, or None if the string cannot be parsed
    """
    if not version:
        return None
    parts = version.strip().lstrip('v').split('.')[:3]
    parts += ['0'] * (3 - len(parts))

    numbers = []
    for part in parts:
        match = _LEADING_DIGITS.match(part)
        if not match:
            return None
        value = int(match.group(1))
        if value > _MAX_COMPONENT:
            return None
        numbers.append(value)

    major, minor, patch = numbers
    return major * 1_000_000 + minor * 1_000 + patch


def version_at_least(version: Optional[str], minimum: str) -> Optional[bool]:
    """Return True if version >= minimum, None if either is unparseable."""
    left = version_code(version)
    right = version_code(minimum)
    if left is None or right is None:
        return None
    return left >= right
