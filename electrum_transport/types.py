"""
Type definitions for electrum-transport.

Defines the enums, dataclasses and protocols shared across the package:
- Server descriptors as persisted in configuration
- Backend descriptors handed to a failover RPC client
- The client interface consumed by the connectivity probe
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
)

if TYPE_CHECKING:
    from electrum_transport.config import ClientConfig
    from electrum_transport.transport import Connection


class Phase(str, Enum):
    """
    Stage of a connection attempt in which an error occurred.
    """
    CONFIG = "config"
    DIAL = "dial"
    HANDSHAKE = "handshake"
    VERIFY = "verify"
    DOWNLOAD = "download"
    PROBE = "probe"
    LIVENESS = "liveness"
    TRANSPORT = "transport"


# =============================================================================
# Dataclasses
# =============================================================================


@dataclass(frozen=True)
class ServerInfo:
    """
    One candidate server.

    Attributes:
        server: Address as "host:port"
        tls: Whether to wrap the connection in TLS
        pem_cert: Pinned certificate (PEM), required when tls is set
    """
    server: str
    tls: bool
    pem_cert: str = ""

    @property
    def address(self) -> str:
        return self.server

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerInfo":
        """
        Build from a persisted config entry.

        Accepts the keys "server", "tls" and "pemCert".

        Raises:
            ValueError: If "server" is missing or empty
        """
        server = data.get("server")
        if not server or not isinstance(server, str):
            raise ValueError(f"Server entry without address: {data!r}")
        return cls(
            server=server,
            tls=bool(data.get("tls", False)),
            pem_cert=data.get("pemCert") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"server": self.server, "tls": self.tls, "pemCert": self.pem_cert}


@dataclass(frozen=True)
class Backend:
    """
    A named capability to open a connection to one server.

    Not a live connection: establish_connection may be called any number
    of times, once per failover attempt.
    """
    name: str
    establish_connection: Callable[[], Awaitable["Connection"]]


# =============================================================================
# External Client Interface
# =============================================================================


ErrorCallback = Callable[[BaseException], None]


class LivenessClient(Protocol):
    """
    Application-level client built on top of a list of backends.

    check_connection() returns normally if the remote end speaks the
    expected protocol and raises otherwise.
    """

    async def check_connection(self) -> None:
        ...

    async def close(self) -> None:
        ...


ClientFactory = Callable[
    [List[Backend], Optional[ErrorCallback], "ClientConfig"],
    LivenessClient,
]
