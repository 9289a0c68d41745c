"""
Pinned certificate verification.

Electrum servers usually run with self-signed certificates whose subject has
nothing to do with the address a user typed in. Trust is therefore anchored
in one certificate captured out-of-band (see electrum_transport.certificates)
instead of a public CA and a hostname:

1. The presented chain is parsed, leaf first
2. Everything after the leaf is an untrusted intermediate
3. The leaf must chain, through those intermediates, to a certificate in the
   pinned PEM, with every link inside its validity window
4. The subject name is never compared against the server address

Usage:
    from electrum_transport.verify import verify_pinned_certificate

    chain = verify_pinned_certificate(raw_certs, server.pem_cert)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID

from electrum_transport.errors import (
    CertificateParseError,
    CertificateVerificationError,
    PinnedCertificateError,
)
from electrum_transport.types import Phase

logger = logging.getLogger(__name__)

# Longest accepted path from leaf to root, leaf and root included.
MAX_CHAIN_LENGTH = 10


def load_trusted_pool(pem: str, address: Optional[str] = None) -> List[x509.Certificate]:
    """
    Build the trusted certificate pool from a pinned PEM.

    Built fresh for every connection attempt and never cached.

    Args:
        pem: One or more PEM "CERTIFICATE" blocks
        address: Server address, for error context

    Returns:
        The certificates in the PEM, in order

    Raises:
        PinnedCertificateError: If the PEM is empty or holds no parseable certificate
    """
    if not pem or not pem.strip():
        raise PinnedCertificateError(
            "No pinned certificate configured", address=address, phase=Phase.CONFIG
        )
    try:
        return x509.load_pem_x509_certificates(pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise PinnedCertificateError(
            f"Failed to load pinned certificate as trusted cert: {e}",
            address=address,
            phase=Phase.CONFIG,
        ) from e


def parse_chain(raw_certs: Sequence[bytes], address: Optional[str] = None) -> List[x509.Certificate]:
    """
    Parse a DER encoded chain as presented by the peer.

    Raises:
        CertificateParseError: If the chain is empty or any entry is not X.509
    """
    if not raw_certs:
        raise CertificateParseError(
            "Server presented an empty certificate chain",
            address=address,
            phase=Phase.VERIFY,
        )
    certs = []
    for index, der in enumerate(raw_certs):
        try:
            certs.append(x509.load_der_x509_certificate(bytes(der)))
        except ValueError as e:
            raise CertificateParseError(
                f"Failed to parse certificate {index} from server: {e}",
                address=address,
                phase=Phase.VERIFY,
            ) from e
    return certs


def verify_pinned_chain(
    raw_certs: Sequence[bytes],
    trusted: Sequence[x509.Certificate],
    now: Optional[datetime] = None,
    address: Optional[str] = None,
) -> List[x509.Certificate]:
    """
    Verify a presented chain against a trusted pool, ignoring hostnames.

    Args:
        raw_certs: DER encoded chain, leaf first
        trusted: Trusted roots, usually from load_trusted_pool()
        now: Verification time (default: current UTC time)
        address: Server address, for error context

    Returns:
        The verified path, leaf first, ending in a trusted certificate

    Raises:
        CertificateParseError: If the chain is empty or unparseable
        CertificateVerificationError: If no valid path to a trusted root exists
    """
    certs = parse_chain(raw_certs, address)
    if not trusted:
        raise CertificateVerificationError(
            "No trusted certificates to verify against",
            address=address,
            phase=Phase.VERIFY,
        )
    now = now or datetime.now(timezone.utc)
    leaf, intermediates = certs[0], certs[1:]

    _check_server_usage(leaf, address)
    path = _build_path(leaf, list(trusted), intermediates, now, address)

    logger.debug(
        f"Verified pinned chain of length {len(path)} for "
        f"{leaf.subject.rfc4514_string() or '<no subject>'}"
    )
    return path


def verify_pinned_certificate(
    raw_certs: Sequence[bytes],
    pem: str,
    now: Optional[datetime] = None,
    address: Optional[str] = None,
) -> List[x509.Certificate]:
    """
    Verify a presented chain against a pinned PEM.

    Combines load_trusted_pool() and verify_pinned_chain(); a missing or
    malformed pin fails instead of skipping verification.
    """
    trusted = load_trusted_pool(pem, address)
    return verify_pinned_chain(raw_certs, trusted, now=now, address=address)


def _verification_error(message: str, address: Optional[str]) -> CertificateVerificationError:
    return CertificateVerificationError(message, address=address, phase=Phase.VERIFY)


def _der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def _check_validity(cert: x509.Certificate, now: datetime, address: Optional[str]) -> None:
    if now < cert.not_valid_before_utc:
        raise _verification_error(
            f"Certificate {cert.subject.rfc4514_string()} is not valid before "
            f"{cert.not_valid_before_utc.isoformat()}",
            address,
        )
    if now > cert.not_valid_after_utc:
        raise _verification_error(
            f"Certificate {cert.subject.rfc4514_string()} expired at "
            f"{cert.not_valid_after_utc.isoformat()}",
            address,
        )


def _check_server_usage(leaf: x509.Certificate, address: Optional[str]) -> None:
    try:
        usage = leaf.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return
    if (
        ExtendedKeyUsageOID.SERVER_AUTH not in usage
        and ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE not in usage
    ):
        raise _verification_error("Certificate is not valid for server authentication", address)


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return constraints.ca


def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


def _check_path_length(issuer: x509.Certificate, below: int, address: Optional[str]) -> None:
    # below counts the intermediates between issuer and the leaf.
    try:
        constraints = issuer.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return
    if constraints.path_length is not None and below > constraints.path_length:
        raise _verification_error(
            f"Path length constraint of {issuer.subject.rfc4514_string()} exceeded",
            address,
        )


def _build_path(
    cert: x509.Certificate,
    roots: List[x509.Certificate],
    intermediates: List[x509.Certificate],
    now: datetime,
    address: Optional[str],
    length: int = 1,
) -> List[x509.Certificate]:
    _check_validity(cert, now, address)

    cert_der = _der(cert)
    if any(_der(root) == cert_der for root in roots):
        return [cert]

    last_error: Optional[CertificateVerificationError] = None
    for root in roots:
        if not _issued_by(cert, root):
            continue
        try:
            _check_path_length(root, length - 1, address)
            _check_validity(root, now, address)
        except CertificateVerificationError as e:
            last_error = e
            continue
        return [cert, root]

    if length + 1 >= MAX_CHAIN_LENGTH:
        raise _verification_error("Certificate chain is too long", address)

    for index, candidate in enumerate(intermediates):
        if not _issued_by(cert, candidate):
            continue
        if not _is_ca(candidate):
            last_error = _verification_error(
                f"Intermediate {candidate.subject.rfc4514_string()} is not a CA",
                address,
            )
            continue
        remaining = intermediates[:index] + intermediates[index + 1:]
        try:
            _check_path_length(candidate, length - 1, address)
            return [cert] + _build_path(candidate, roots, remaining, now, address, length + 1)
        except CertificateVerificationError as e:
            last_error = e

    if last_error is not None:
        raise last_error
    raise _verification_error("Certificate signed by unknown authority", address)
