"""
Trust-on-first-use certificate download.

download_certificate() connects once, accepts whatever certificate the server
presents and returns its leaf as PEM. Nothing about the result is verified:
callers show it (or its fingerprint) to the user and persist it as the
server's pinned certificate, which establish_connection() then enforces.

Usage:
    from electrum_transport import DirectDialer, download_certificate

    pem = await download_certificate("electrum.example.org:50002", DirectDialer())
    print(certificate_fingerprint(pem))
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import ssl

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from electrum_transport._core.tls import peer_leaf, start_tls
from electrum_transport.dialer import Dialer, abort_stream, open_stream
from electrum_transport.errors import CertificateParseError, NoCertificateError
from electrum_transport.types import Phase

logger = logging.getLogger(__name__)


def der_to_pem(der: bytes) -> str:
    """Encode DER bytes as a PEM "CERTIFICATE" block."""
    return ssl.DER_cert_to_PEM_cert(der)


def pem_to_der(pem: str) -> bytes:
    """
    Decode the first PEM "CERTIFICATE" block.

    Raises:
        CertificateParseError: If no certificate block is found
    """
    try:
        cert = x509.load_pem_x509_certificate(pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise CertificateParseError(f"Invalid PEM certificate: {e}", phase=Phase.CONFIG) from e
    return cert.public_bytes(serialization.Encoding.DER)


def certificate_fingerprint(pem: str) -> str:
    """SHA-256 fingerprint of a PEM certificate as colon separated hex."""
    digest = hashlib.sha256(pem_to_der(pem)).hexdigest().upper()
    return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))


async def download_certificate(address: str, dialer: Dialer) -> str:
    """
    Download the leaf certificate a TLS server presents.

    Args:
        address: Server address as "host:port"
        dialer: Opens the underlying TCP stream (direct or via proxy)

    Returns:
        The leaf certificate as PEM

    Raises:
        DialError: If dialing or the TLS handshake fails
        NoCertificateError: If the server presented no certificate
    """
    _, writer = await open_stream(dialer, address)
    ssl_object = await start_tls(writer, address)
    try:
        der = peer_leaf(ssl_object)
        if not der:
            raise NoCertificateError(
                "Server presented no certificates", address=address, phase=Phase.DOWNLOAD
            )
    finally:
        abort_stream(writer, address)

    logger.info(f"Downloaded certificate from {address}")
    return der_to_pem(der)


def download_certificate_sync(address: str, dialer: Dialer) -> str:
    """
    Sync wrapper for download_certificate.

    See download_certificate() for full documentation.
    """
    return asyncio.run(download_certificate(address, dialer))
