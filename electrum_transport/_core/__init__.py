"""
Internal helpers for electrum-transport.

This module handles:
- Version constants and client software identification
- TLS contexts and peer chain extraction
"""

from electrum_transport._core.version import (
    PACKAGE_VERSION,
    DEFAULT_SOFTWARE_NAME,
    parse_version,
    format_software_version,
)
from electrum_transport._core.tls import (
    create_unverified_context,
    start_tls,
    peer_chain,
    peer_leaf,
)

__all__ = [
    # Version
    "PACKAGE_VERSION",
    "DEFAULT_SOFTWARE_NAME",
    "parse_version",
    "format_software_version",
    # TLS
    "create_unverified_context",
    "start_tls",
    "peer_chain",
    "peer_leaf",
]
