"""
Connection establishment for Electrum servers.

Plain servers get the dialed TCP stream as is. TLS servers get the stream
upgraded to TLS with the ssl module's own checks disabled; the presented
chain is then verified against the server's pinned certificate before the
connection is handed out.

Usage:
    from electrum_transport import ServerInfo, DirectDialer, establish_connection

    server = ServerInfo("electrum.example.org:50002", tls=True, pem_cert=pem)
    async with await establish_connection(server, DirectDialer()) as conn:
        conn.write(b'{"id": 0, "method": "server.version", "params": []}\\n')
        await conn.drain()
        line = await conn.readline()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from electrum_transport._core.tls import peer_chain, peer_leaf, start_tls
from electrum_transport.dialer import Dialer, abort_stream, close_stream, open_stream
from electrum_transport.types import ServerInfo
from electrum_transport.verify import load_trusted_pool, verify_pinned_chain

logger = logging.getLogger(__name__)


class Connection:
    """
    An open, usable byte stream to one server.

    Whoever holds a Connection owns it and must close it. close() is safe to
    call more than once and never raises.

    Attributes:
        address: Server address this connection was dialed to
        peer_certificate: DER encoded leaf certificate (TLS only)
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        address: str,
        peer_certificate: Optional[bytes] = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.address = address
        self.peer_certificate = peer_certificate
        self._closed = False

    @property
    def is_tls(self) -> bool:
        return self._writer.get_extra_info("ssl_object") is not None

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    async def readline(self) -> bytes:
        return await self._reader.readline()

    async def readexactly(self, n: int) -> bytes:
        return await self._reader.readexactly(n)

    def write(self, data: bytes) -> None:
        self._writer.write(data)

    async def drain(self) -> None:
        await self._writer.drain()

    async def close(self) -> None:
        """Close the connection. Errors while closing are logged and dropped."""
        if self._closed:
            return
        self._closed = True
        await close_stream(self._writer, self.address)

    def abort(self) -> None:
        """Drop the connection immediately, skipping the graceful TLS close."""
        if self._closed:
            return
        self._closed = True
        abort_stream(self._writer, self.address)

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Connection(address={self.address!r}, tls={self.is_tls}, closed={self._closed})"


async def new_tcp_connection(address: str, dialer: Dialer) -> Connection:
    """
    Open a plain TCP connection.

    Raises:
        DialError: If the dialer fails
    """
    reader, writer = await open_stream(dialer, address)
    logger.debug(f"Opened TCP connection to {address}")
    return Connection(reader, writer, address)


async def new_tls_connection(address: str, pem_cert: str, dialer: Dialer) -> Connection:
    """
    Open a TLS connection verified against a pinned certificate.

    The trusted pool is built from pem_cert before dialing, so a bad pin
    never causes network traffic.

    Raises:
        PinnedCertificateError: If pem_cert is missing or malformed
        DialError: If dialing or the TLS handshake fails
        CertificateParseError: If the server's chain cannot be parsed
        CertificateVerificationError: If the chain does not lead to the pin
    """
    trusted = load_trusted_pool(pem_cert, address)

    reader, writer = await open_stream(dialer, address)
    ssl_object = await start_tls(writer, address)
    try:
        verify_pinned_chain(peer_chain(ssl_object), trusted, address=address)
    except BaseException:
        abort_stream(writer, address)
        raise

    logger.debug(f"Opened TLS connection to {address} with pinned certificate")
    return Connection(reader, writer, address, peer_certificate=peer_leaf(ssl_object))


async def establish_connection(server: ServerInfo, dialer: Dialer) -> Connection:
    """
    Connect to a server and return the open connection.

    Args:
        server: Server to connect to
        dialer: Opens the underlying TCP stream (direct or via proxy)

    Returns:
        A usable Connection owned by the caller

    Raises:
        ElectrumTransportError: Any of the errors of new_tcp_connection()
            or new_tls_connection()
    """
    if server.tls:
        return await new_tls_connection(server.server, server.pem_cert, dialer)
    return await new_tcp_connection(server.server, dialer)

