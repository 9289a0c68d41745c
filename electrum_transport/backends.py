"""
Backend registration for failover RPC clients.

A failover client only needs, per server, a name for its logs and a way to
open a fresh connection whenever it (re)connects. register_backends() builds
exactly that from a list of servers without doing any I/O; the list order is
the failover priority.

Usage:
    from electrum_transport import DirectDialer, register_backends

    backends = register_backends(servers, DirectDialer())
    conn = await backends[0].establish_connection()
"""

from __future__ import annotations

import functools
import logging
from typing import List, Optional, Sequence

from electrum_transport.config import ClientConfig
from electrum_transport.dialer import Dialer
from electrum_transport.transport import establish_connection
from electrum_transport.types import (
    Backend,
    ClientFactory,
    ErrorCallback,
    LivenessClient,
    ServerInfo,
)

logger = logging.getLogger(__name__)


def backend_name(server: ServerInfo) -> str:
    """
    Name a backend after its server, e.g. "electrum.example.org:50002:s".

    The suffix is "s" for TLS and "p" for plain TCP.
    """
    suffix = "s" if server.tls else "p"
    return f"{server.server}:{suffix}"


def register_backends(servers: Sequence[ServerInfo], dialer: Dialer) -> List[Backend]:
    """
    Create one backend per server, in the same order.

    Args:
        servers: Equivalent servers, highest priority first
        dialer: Used by every connection attempt of every backend

    Returns:
        Backends whose establish_connection() connects to their server
    """
    return [
        Backend(
            name=backend_name(server),
            establish_connection=functools.partial(establish_connection, server, dialer),
        )
        for server in servers
    ]


def connect(
    servers: Sequence[ServerInfo],
    dialer: Dialer,
    client_factory: ClientFactory,
    config: Optional[ClientConfig] = None,
    on_error: Optional[ErrorCallback] = None,
) -> LivenessClient:
    """
    Create a failover client over all given servers.

    The client decides when to connect and how to fail over; this only
    registers the backends and hands them over.

    Args:
        servers: Equivalent servers, highest priority first
        dialer: Opens the underlying TCP streams
        client_factory: Builds the RPC client from the backends
        config: Client settings (default: ClientConfig())
        on_error: Passed to the client for transport error reports

    Returns:
        The client built by client_factory
    """
    effective_config = config or ClientConfig()
    server_list = ", ".join(server.server for server in servers)
    logger.debug(f"Connecting to Electrum servers: {server_list}")

    backends = register_backends(servers, dialer)
    return client_factory(backends, on_error, effective_config)
