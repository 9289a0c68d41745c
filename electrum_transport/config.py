"""
Configuration for electrum-transport.

Nothing here is global: a ClientConfig is passed explicitly to every client
factory, and the server list is read from the environment only when asked.

Environment Variables:
    ELECTRUM_TRANSPORT_CLIENT_NAME: Client software name reported to servers
    ELECTRUM_TRANSPORT_CLIENT_VERSION: Client software version (semver)
    ELECTRUM_TRANSPORT_SERVERS: Comma separated "host:port:s" (TLS) or
        "host:port:p" (plain) entries
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from electrum_transport._core.version import (
    DEFAULT_SOFTWARE_NAME,
    PACKAGE_VERSION,
    format_software_version,
)
from electrum_transport.pins import PinStore
from electrum_transport.types import ServerInfo

logger = logging.getLogger(__name__)

CLIENT_NAME_ENV = "ELECTRUM_TRANSPORT_CLIENT_NAME"
CLIENT_VERSION_ENV = "ELECTRUM_TRANSPORT_CLIENT_VERSION"
SERVERS_ENV = "ELECTRUM_TRANSPORT_SERVERS"


@dataclass(frozen=True)
class ClientConfig:
    """
    Settings for application-level clients.

    Attributes:
        software_name: Client software name sent during version negotiation
        software_version: Client software version (semver)
    """
    software_name: str = DEFAULT_SOFTWARE_NAME
    software_version: str = PACKAGE_VERSION

    def __post_init__(self) -> None:
        # Fail at construction rather than at the first handshake.
        format_software_version(self.software_name, self.software_version)

    @property
    def software_version_string(self) -> str:
        """Identifier sent to servers, e.g. "BitBoxApp/4.2.0"."""
        return format_software_version(self.software_name, self.software_version)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        env = os.environ if environ is None else environ
        return cls(
            software_name=env.get(CLIENT_NAME_ENV) or DEFAULT_SOFTWARE_NAME,
            software_version=env.get(CLIENT_VERSION_ENV) or PACKAGE_VERSION,
        )


def parse_server_entry(entry: str) -> ServerInfo:
    """
    Parse "host:port:s" or "host:port:p" into a ServerInfo without a pin.

    Raises:
        ValueError: If the entry has no transport suffix
    """
    address, sep, suffix = entry.strip().rpartition(":")
    if not sep or not address or suffix not in ("s", "p"):
        raise ValueError(f"Invalid server entry (expected host:port:s or host:port:p): {entry!r}")
    return ServerInfo(server=address, tls=suffix == "s")


def servers_from_env(
    environ: Optional[Mapping[str, str]] = None,
    store: Optional[PinStore] = None,
) -> List[ServerInfo]:
    """
    Read the server list from ELECTRUM_TRANSPORT_SERVERS.

    TLS servers get their pinned certificate from the pin store. A TLS
    server without a stored pin is kept with an empty pin, so connecting to
    it fails until a certificate has been pinned.

    Returns:
        Servers in the configured order, empty if the variable is unset
    """
    env = os.environ if environ is None else environ
    raw = env.get(SERVERS_ENV, "")
    pins = store or PinStore()

    servers = []
    for entry in raw.split(","):
        if not entry.strip():
            continue
        server = parse_server_entry(entry)
        if server.tls:
            pem = pins.load(server.server)
            if pem is None:
                logger.warning(f"No pinned certificate stored for {server.server}")
            else:
                server = ServerInfo(server=server.server, tls=True, pem_cert=pem)
        servers.append(server)
    return servers
