"""
Version constants and client software identification.

- PACKAGE_VERSION: electrum-transport version (independent semver)
- DEFAULT_SOFTWARE_NAME: name reported to servers when the caller sets none
"""

from __future__ import annotations

import re
from typing import Tuple

# electrum-transport version (user-facing, independent semver)
PACKAGE_VERSION = "0.1.0"

# Reported to servers during protocol version negotiation.
# Purely informational, it has no effect on supported protocol versions.
DEFAULT_SOFTWARE_NAME = "electrum-transport"


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse a semver version string into (major, minor, patch) tuple.

    Args:
        version: Version string like "4.2.0" or "v4.2.0"

    Returns:
        Tuple of (major, minor, patch)

    Raises:
        ValueError: If version string is invalid
    """
    # Strip leading 'v' if present
    version = version.lstrip("v")

    match = re.match(r"^(\d+)\.(\d+)\.(\d+)", version)
    if not match:
        raise ValueError(f"Invalid version string: {version}")

    return (int(match.group(1)), int(match.group(2)), int(match.group(3)))


def format_software_version(name: str, version: str) -> str:
    """
    Build the client software identifier, e.g. "BitBoxApp/4.2.0".

    Raises:
        ValueError: If name is empty or version is not semver
    """
    if not name:
        raise ValueError("Client software name must not be empty")
    major, minor, patch = parse_version(version)
    return f"{name}/{major}.{minor}.{patch}"
