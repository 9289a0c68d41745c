"""
Exception types for electrum-transport.

Provides typed exceptions for:
- Dialing and TLS handshakes
- Pinned certificate parsing and verification
- Certificate download
- Connectivity probes (liveness and transport errors)
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from electrum_transport.types import Phase


class ElectrumTransportError(Exception):
    """
    Base exception for all electrum-transport errors.

    Every error records the server address and the phase in which it
    occurred, so callers can tell a dial failure apart from a bad pin.
    """

    user_message = "The server could not be used"

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        phase: Optional["Phase"] = None,
    ):
        self.detail = message
        self.address = address
        self.phase = phase

        prefix = ""
        if address:
            prefix = f"{address}: "
        if phase is not None:
            prefix += f"[{phase.value}] "

        super().__init__(f"{prefix}{message}")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(detail={self.detail!r}, "
            f"address={self.address!r}, phase={self.phase!r})"
        )


# =============================================================================
# Network Errors
# =============================================================================


class DialError(ElectrumTransportError):
    """
    Raised when a connection to the server cannot be opened.

    This includes:
    - Dialer failures (refused, unreachable, proxy errors)
    - TLS handshake failures on an otherwise open connection
    """

    user_message = "The server is unreachable"


class CommunicationError(ElectrumTransportError):
    """
    Raised when the RPC client reports a transport error after the
    server was reached.
    """

    user_message = "The connection to the server failed"


# =============================================================================
# Certificate Errors
# =============================================================================


class CertificateParseError(ElectrumTransportError):
    """Raised when certificate bytes cannot be parsed as X.509."""

    user_message = "The server certificate could not be read"


class PinnedCertificateError(CertificateParseError):
    """
    Raised when the configured pinned certificate is missing or malformed.

    This is a configuration error: no connection was attempted.
    """

    user_message = "The pinned certificate for this server is invalid"


class CertificateVerificationError(ElectrumTransportError):
    """
    Raised when the presented chain does not validate to the pinned
    certificate.

    Example:
        try:
            conn = await establish_connection(server, dialer)
        except CertificateVerificationError as e:
            logger.warning(f"Pinned certificate mismatch: {e.detail}")
    """

    user_message = "The server certificate does not match the pinned certificate"


class NoCertificateError(ElectrumTransportError):
    """Raised when the server presented no certificate during download."""

    user_message = "The server did not present a certificate"


# =============================================================================
# Probe Errors
# =============================================================================


class ProtocolCheckError(ElectrumTransportError):
    """
    Raised when the application-level liveness check fails on a server
    that was reachable at the transport level.
    """

    user_message = "The server is not a compatible Electrum server"
