"""
Pytest configuration for electrum-transport tests.

Certificates are generated on the fly with cryptography; servers are real
asyncio servers bound to 127.0.0.1.
"""

import asyncio
import contextlib
import socket
import ssl
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from electrum_transport.dialer import DirectDialer

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


@dataclass
class Issued:
    """A certificate together with its private key."""
    cert: x509.Certificate
    key: ec.EllipticCurvePrivateKey

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> str:
        return self.cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    @property
    def key_pem(self) -> str:
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")


def issue(
    common_name: str,
    issuer: Optional[Issued] = None,
    ca: bool = False,
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
    usages: Optional[List[x509.ObjectIdentifier]] = None,
    path_length: Optional[int] = None,
) -> Issued:
    """Issue a certificate, self-signed unless an issuer is given."""
    now = datetime.now(timezone.utc)
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.cert.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=path_length), critical=True)
    )
    if usages is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage(usages), critical=False)

    signing_key = issuer.key if issuer else key
    return Issued(cert=builder.sign(signing_key, hashes.SHA256()), key=key)


@dataclass
class PKI:
    root: Issued
    intermediate: Issued
    leaf: Issued
    direct_leaf: Issued
    self_signed: Issued
    other_root: Issued


@pytest.fixture(scope="session")
def pki():
    """A small certificate hierarchy shared by all tests."""
    root = issue("Test Root CA", ca=True)
    intermediate = issue("Test Intermediate CA", issuer=root, ca=True)
    return PKI(
        root=root,
        intermediate=intermediate,
        leaf=issue("electrum.example.org", issuer=intermediate),
        direct_leaf=issue(
            "direct.example.org", issuer=root, usages=[ExtendedKeyUsageOID.SERVER_AUTH]
        ),
        self_signed=issue("self-signed.example.org"),
        other_root=issue("Other Root CA", ca=True),
    )


@pytest.fixture
def issue_cert():
    """Issue extra certificates inside a test."""
    return issue


@pytest.fixture
def server_ssl_context(tmp_path):
    """Build a server-side SSL context presenting the given chain."""
    def build(*chain: Issued) -> ssl.SSLContext:
        cert_file = tmp_path / f"chain-{len(list(tmp_path.iterdir()))}.pem"
        key_file = cert_file.with_suffix(".key")
        cert_file.write_text("".join(issued.pem for issued in chain))
        key_file.write_text(chain[0].key_pem)

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(str(cert_file), str(key_file))
        return context
    return build


async def _echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while True:
            line = await reader.readline()
            if not line:
                break
            writer.write(line)
            await writer.drain()
    except (ConnectionError, ssl.SSLError):
        pass
    finally:
        writer.close()


@pytest.fixture
async def serve():
    """Start local echo servers; returns their "127.0.0.1:port" address."""
    servers = []

    async def start(ssl_context: Optional[ssl.SSLContext] = None, handler=_echo) -> str:
        server = await asyncio.start_server(handler, "127.0.0.1", 0, ssl=ssl_context)
        servers.append(server)
        port = server.sockets[0].getsockname()[1]
        return f"127.0.0.1:{port}"

    yield start

    for server in servers:
        server.close()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(server.wait_closed(), timeout=1.0)


@pytest.fixture
def closed_port_address():
    """An address on which nothing listens."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"127.0.0.1:{port}"


@pytest.fixture
def listening_address():
    """
    A bound, listening socket that never accepts.

    The kernel completes TCP handshakes into the backlog, which is enough
    for a plain reachability check from any event loop.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(16)
        yield f"127.0.0.1:{s.getsockname()[1]}"


class RecordingDialer(DirectDialer):
    """DirectDialer that remembers every writer it handed out."""

    def __init__(self):
        super().__init__()
        self.writers = []

    async def dial(self, network, address):
        reader, writer = await super().dial(network, address)
        self.writers.append(writer)
        return reader, writer


@pytest.fixture
def recording_dialer():
    return RecordingDialer()
