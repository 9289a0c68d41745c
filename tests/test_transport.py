"""Tests for electrum_transport.transport module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from electrum_transport import verify
from electrum_transport._core.tls import peer_chain, start_tls
from electrum_transport.dialer import DirectDialer
from electrum_transport.errors import (
    CertificateVerificationError,
    DialError,
    PinnedCertificateError,
)
from electrum_transport.transport import Connection, establish_connection
from electrum_transport.types import Phase, ServerInfo


async def roundtrip(conn: Connection, payload: bytes = b"ping\n") -> bytes:
    conn.write(payload)
    await conn.drain()
    return await conn.readline()


class TestPlainConnection:
    """Tests for establish_connection without TLS."""

    @pytest.mark.asyncio
    async def test_connects(self, serve):
        address = await serve()
        conn = await establish_connection(ServerInfo(address, tls=False), DirectDialer())
        try:
            assert not conn.is_tls
            assert conn.peer_certificate is None
            assert await roundtrip(conn) == b"ping\n"
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_ignores_pem_when_plain(self, serve):
        address = await serve()
        server = ServerInfo(address, tls=False, pem_cert="not a certificate")
        async with await establish_connection(server, DirectDialer()) as conn:
            assert await roundtrip(conn) == b"ping\n"
        assert conn.closed

    @pytest.mark.asyncio
    async def test_dial_error(self, closed_port_address):
        with pytest.raises(DialError) as exc_info:
            await establish_connection(ServerInfo(closed_port_address, tls=False), DirectDialer())
        assert exc_info.value.address == closed_port_address

    @pytest.mark.asyncio
    async def test_uses_given_dialer(self):
        reader, writer = MagicMock(), MagicMock()
        dialer = MagicMock()
        dialer.dial = AsyncMock(return_value=(reader, writer))

        conn = await establish_connection(ServerInfo("proxied.onion:50001", tls=False), dialer)

        dialer.dial.assert_awaited_once_with("tcp", "proxied.onion:50001")
        assert conn.address == "proxied.onion:50001"


class TestTLSConnection:
    """Tests for establish_connection with a pinned certificate."""

    @pytest.mark.asyncio
    async def test_self_signed_pin(self, pki, serve, server_ssl_context):
        """Hostname mismatch alone never fails: the cert names another host."""
        address = await serve(server_ssl_context(pki.self_signed))
        server = ServerInfo(address, tls=True, pem_cert=pki.self_signed.pem)

        async with await establish_connection(server, DirectDialer()) as conn:
            assert conn.is_tls
            assert conn.peer_certificate == pki.self_signed.der
            assert await roundtrip(conn) == b"ping\n"

    @pytest.mark.asyncio
    async def test_root_pin(self, pki, serve, server_ssl_context):
        address = await serve(server_ssl_context(pki.direct_leaf))
        server = ServerInfo(address, tls=True, pem_cert=pki.root.pem)

        async with await establish_connection(server, DirectDialer()) as conn:
            assert await roundtrip(conn) == b"ping\n"

    @pytest.mark.asyncio
    async def test_chain_through_intermediate(self, pki, serve, server_ssl_context):
        """The server sends leaf and intermediate; only the root is pinned."""
        address = await serve(server_ssl_context(pki.leaf, pki.intermediate))
        server = ServerInfo(address, tls=True, pem_cert=pki.root.pem)

        async with await establish_connection(server, DirectDialer()) as conn:
            assert conn.peer_certificate == pki.leaf.der
            assert await roundtrip(conn) == b"ping\n"

    @pytest.mark.asyncio
    async def test_chain_pinned_on_intermediate(self, pki, serve, server_ssl_context):
        address = await serve(server_ssl_context(pki.leaf, pki.intermediate))
        server = ServerInfo(address, tls=True, pem_cert=pki.intermediate.pem)

        async with await establish_connection(server, DirectDialer()) as conn:
            assert await roundtrip(conn) == b"ping\n"

    @pytest.mark.asyncio
    async def test_chain_wrong_root(self, pki, serve, server_ssl_context):
        address = await serve(server_ssl_context(pki.leaf, pki.intermediate))
        server = ServerInfo(address, tls=True, pem_cert=pki.other_root.pem)

        with pytest.raises(CertificateVerificationError):
            await establish_connection(server, DirectDialer())

    @pytest.mark.asyncio
    async def test_peer_chain(self, pki, serve, server_ssl_context):
        address = await serve(server_ssl_context(pki.leaf, pki.intermediate))
        reader, writer = await DirectDialer().dial("tcp", address)
        ssl_object = await start_tls(writer, address)
        try:
            assert peer_chain(ssl_object) == [pki.leaf.der, pki.intermediate.der]
        finally:
            writer.transport.abort()

    @pytest.mark.asyncio
    async def test_wrong_pin(self, pki, serve, server_ssl_context, recording_dialer):
        address = await serve(server_ssl_context(pki.self_signed))
        server = ServerInfo(address, tls=True, pem_cert=pki.other_root.pem)

        with pytest.raises(CertificateVerificationError) as exc_info:
            await establish_connection(server, recording_dialer)

        assert exc_info.value.address == address
        assert len(recording_dialer.writers) == 1
        assert recording_dialer.writers[0].is_closing()

    @pytest.mark.asyncio
    async def test_missing_pin_does_not_dial(self):
        dialer = MagicMock()
        dialer.dial = AsyncMock()

        with pytest.raises(PinnedCertificateError) as exc_info:
            await establish_connection(ServerInfo("a.example.org:50002", tls=True), dialer)

        assert exc_info.value.phase == Phase.CONFIG
        dialer.dial.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_pin_does_not_dial(self):
        dialer = MagicMock()
        dialer.dial = AsyncMock()
        server = ServerInfo("a.example.org:50002", tls=True, pem_cert="garbage")

        with pytest.raises(PinnedCertificateError):
            await establish_connection(server, dialer)
        dialer.dial.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handshake_failure(self, pki, serve, recording_dialer):
        """A server that does not speak TLS fails the handshake."""
        async def not_tls(reader, writer):
            writer.write(b"HTTP/1.1 400 Bad Request\r\n\r\n")
            await writer.drain()
            writer.close()

        address = await serve(handler=not_tls)
        server = ServerInfo(address, tls=True, pem_cert=pki.self_signed.pem)

        with pytest.raises(DialError) as exc_info:
            await asyncio.wait_for(establish_connection(server, recording_dialer), timeout=10)

        assert exc_info.value.phase == Phase.HANDSHAKE
        assert recording_dialer.writers[0].is_closing()

    @pytest.mark.asyncio
    async def test_pool_built_per_attempt(self, pki, serve, server_ssl_context):
        address = await serve(server_ssl_context(pki.self_signed))
        server = ServerInfo(address, tls=True, pem_cert=pki.self_signed.pem)

        with patch(
            "electrum_transport.transport.load_trusted_pool",
            wraps=verify.load_trusted_pool,
        ) as load:
            for _ in range(2):
                conn = await establish_connection(server, DirectDialer())
                await conn.close()

        assert load.call_count == 2


class TestConnection:
    """Tests for Connection."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, serve):
        address = await serve()
        conn = await establish_connection(ServerInfo(address, tls=False), DirectDialer())
        await conn.close()
        await conn.close()
        assert conn.closed

    @pytest.mark.asyncio
    async def test_close_never_raises(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock(side_effect=BrokenPipeError())
        conn = Connection(MagicMock(), writer, "a:1")
        await conn.close()
        writer.close.assert_called_once()

    def test_repr(self):
        writer = MagicMock()
        writer.get_extra_info.return_value = None
        conn = Connection(MagicMock(), writer, "a:1")
        assert "a:1" in repr(conn)

    def test_abort_skips_graceful_close(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        conn = Connection(MagicMock(), writer, "a:1")

        conn.abort()
        conn.abort()

        writer.transport.abort.assert_called_once()
        writer.wait_closed.assert_not_awaited()
        assert conn.closed

    @pytest.mark.asyncio
    async def test_close_after_abort(self):
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        conn = Connection(MagicMock(), writer, "a:1")

        conn.abort()
        await conn.close()

        writer.close.assert_not_called()
