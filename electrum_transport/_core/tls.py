"""
TLS plumbing shared by connection establishment and certificate download.

Server identity is never checked by the ssl module here: both contexts
disable hostname checking and chain validation. Establishment substitutes
the pinned chain verification in electrum_transport.verify; download does
not verify at all.
"""

from __future__ import annotations

import _ssl
import asyncio
import logging
import ssl
import sys
from typing import List, Optional

from electrum_transport.dialer import split_host_port
from electrum_transport.errors import DialError
from electrum_transport.types import Phase

logger = logging.getLogger(__name__)


def create_unverified_context() -> ssl.SSLContext:
    """
    Create a client context that accepts any certificate.

    Callers must verify the presented chain themselves before trusting
    the connection.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


async def start_tls(writer: asyncio.StreamWriter, address: str) -> ssl.SSLObject:
    """
    Upgrade an open stream to TLS and return its SSL object.

    The host part of address is sent as SNI; the ssl module leaves it out
    for IP literals.

    On failure the stream is closed. Its close waiter is not guaranteed to
    fire after a failed handshake, so callers must not await wait_closed().

    Raises:
        DialError: If the handshake fails
    """
    try:
        host, _ = split_host_port(address)
    except ValueError:
        host = ""

    try:
        await writer.start_tls(create_unverified_context(), server_hostname=host or None)
    except BaseException as e:
        writer.close()
        if isinstance(e, (OSError, ssl.SSLError)):
            raise DialError(
                f"TLS handshake failed: {e}", address=address, phase=Phase.HANDSHAKE
            ) from e
        raise

    ssl_object = writer.get_extra_info("ssl_object")
    if ssl_object is None:
        writer.close()
        raise DialError(
            "TLS handshake did not produce a session", address=address, phase=Phase.HANDSHAKE
        )
    logger.debug(f"TLS handshake with {address} done ({ssl_object.version()})")
    return ssl_object


def peer_chain(ssl_object: ssl.SSLObject) -> List[bytes]:
    """
    Get the DER encoded chain presented by the peer, leaf first.

    The chain is the unverified one: exactly what the server sent,
    intermediates included.
    """
    if sys.version_info >= (3, 13):
        return [bytes(der) for der in ssl_object.get_unverified_chain()]

    # Before 3.13 only the _ssl object exposes the chain, as _ssl.Certificate.
    chain = ssl_object._sslobj.get_unverified_chain() or ()
    return [cert.public_bytes(_ssl.ENCODING_DER) for cert in chain]


def peer_leaf(ssl_object: ssl.SSLObject) -> Optional[bytes]:
    """Get the DER encoded leaf certificate presented by the peer."""
    return ssl_object.getpeercert(binary_form=True) or None
