"""
Dialers open the raw TCP stream a connection is built on.

Any object with an async dial(network, address) method returning an asyncio
stream pair can be used, e.g. one that routes through a SOCKS proxy. The
rest of the package never looks past this interface.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional, Protocol, Tuple

from electrum_transport.errors import DialError, ElectrumTransportError
from electrum_transport.types import Phase

logger = logging.getLogger(__name__)


StreamPair = Tuple[asyncio.StreamReader, asyncio.StreamWriter]


class Dialer(Protocol):
    """Opens a bidirectional stream to an address."""

    async def dial(self, network: str, address: str) -> StreamPair:
        ...


def split_host_port(address: str) -> Tuple[str, int]:
    """
    Split "host:port" or "[v6-host]:port" into its parts.

    Raises:
        ValueError: If the address has no valid port
    """
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"Invalid address: {address}")
        port_str = rest[1:]
    else:
        host, sep, port_str = address.rpartition(":")
        if not sep or ":" in host:
            raise ValueError(f"Invalid address: {address}")

    if not port_str.isdigit() or not 0 < int(port_str) < 65536:
        raise ValueError(f"Invalid port in address: {address}")
    return host, int(port_str)


class DirectDialer:
    """
    Connects straight to the target without a proxy.

    Args:
        timeout: Optional connect timeout in seconds. No timeout by default;
            callers may also cancel the surrounding task.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    async def dial(self, network: str, address: str) -> StreamPair:
        if network != "tcp":
            raise DialError(f"Unsupported network: {network}", address=address, phase=Phase.DIAL)
        try:
            host, port = split_host_port(address)
        except ValueError as e:
            raise DialError(str(e), address=address, phase=Phase.DIAL) from e

        logger.debug(f"Dialing {address}")
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DialError(
                f"Connection timed out after {self.timeout}s", address=address, phase=Phase.DIAL
            ) from e
        except OSError as e:
            raise DialError(f"Failed to connect: {e}", address=address, phase=Phase.DIAL) from e

    def __repr__(self) -> str:
        return f"DirectDialer(timeout={self.timeout!r})"


async def open_stream(dialer: Dialer, address: str) -> StreamPair:
    """
    Dial address through dialer.

    Errors that are not already package errors are wrapped in DialError.
    """
    try:
        return await dialer.dial("tcp", address)
    except ElectrumTransportError:
        raise
    except Exception as e:
        raise DialError(f"Failed to connect: {e}", address=address, phase=Phase.DIAL) from e


async def close_stream(writer: asyncio.StreamWriter, address: str) -> None:
    """Close a dialed stream. Errors while closing are logged and dropped."""
    writer.close()
    try:
        await writer.wait_closed()
    except (OSError, ssl.SSLError) as e:
        logger.debug(f"Error while closing connection to {address}: {e}")
    logger.debug(f"Closed connection to {address}")


def abort_stream(writer: asyncio.StreamWriter, address: str) -> None:
    """
    Drop a stream at once, without a TLS close_notify exchange.

    For connections nobody will read from again: a graceful TLS close waits
    for the peer's reply, up to asyncio's SSL shutdown timeout.
    """
    writer.transport.abort()
    logger.debug(f"Aborted connection to {address}")
