"""
electrum-transport: Pinned-certificate connections to Electrum servers.

This package provides:
- TCP and TLS connection establishment through a pluggable dialer
- Certificate pinning that replaces hostname verification
- Trust-on-first-use certificate download and a pin store
- Backend registration for failover RPC clients
- A connectivity probe racing transport errors against a liveness check

Installation:
    pip install electrum-transport

Quickstart (Pinning):
    from electrum_transport import DirectDialer, download_certificate

    pem = await download_certificate("electrum.example.org:50002", DirectDialer())

Quickstart (Connecting):
    from electrum_transport import ServerInfo, DirectDialer, establish_connection

    server = ServerInfo("electrum.example.org:50002", tls=True, pem_cert=pem)
    conn = await establish_connection(server, DirectDialer())

Quickstart (Checking a server):
    from electrum_transport import check_server

    await check_server(server, DirectDialer(), client_factory)
"""

from electrum_transport.types import (
    Backend,
    ClientFactory,
    ErrorCallback,
    LivenessClient,
    Phase,
    ServerInfo,
)
from electrum_transport.errors import (
    ElectrumTransportError,
    DialError,
    CommunicationError,
    CertificateParseError,
    PinnedCertificateError,
    CertificateVerificationError,
    NoCertificateError,
    ProtocolCheckError,
)
from electrum_transport.dialer import (
    Dialer,
    DirectDialer,
    split_host_port,
)
from electrum_transport.verify import (
    load_trusted_pool,
    verify_pinned_chain,
    verify_pinned_certificate,
)
from electrum_transport.transport import (
    Connection,
    establish_connection,
)
from electrum_transport.certificates import (
    download_certificate,
    download_certificate_sync,
    der_to_pem,
    pem_to_der,
    certificate_fingerprint,
)
from electrum_transport.pins import (
    PinStore,
    pin_server_certificate,
)
from electrum_transport.config import (
    ClientConfig,
    servers_from_env,
)
from electrum_transport.backends import (
    backend_name,
    register_backends,
    connect,
)
from electrum_transport.probe import (
    check_server,
    check_server_sync,
)
from electrum_transport._core.version import PACKAGE_VERSION

__version__ = PACKAGE_VERSION

__all__ = [
    # Version
    "__version__",
    "PACKAGE_VERSION",
    # Types
    "Backend",
    "ClientFactory",
    "ErrorCallback",
    "LivenessClient",
    "Phase",
    "ServerInfo",
    # Errors
    "ElectrumTransportError",
    "DialError",
    "CommunicationError",
    "CertificateParseError",
    "PinnedCertificateError",
    "CertificateVerificationError",
    "NoCertificateError",
    "ProtocolCheckError",
    # Dialing
    "Dialer",
    "DirectDialer",
    "split_host_port",
    # Verification
    "load_trusted_pool",
    "verify_pinned_chain",
    "verify_pinned_certificate",
    # Connections
    "Connection",
    "establish_connection",
    # Certificates
    "download_certificate",
    "download_certificate_sync",
    "der_to_pem",
    "pem_to_der",
    "certificate_fingerprint",
    # Pins
    "PinStore",
    "pin_server_certificate",
    # Config
    "ClientConfig",
    "servers_from_env",
    # Backends
    "backend_name",
    "register_backends",
    "connect",
    # Probe
    "check_server",
    "check_server_sync",
]
