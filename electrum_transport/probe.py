"""
Connectivity probe for a single Electrum server.

check_server() answers "can this server be used?" as fast as possible:

1. Connect once. If that fails, the error is reported right away and the
   liveness check never runs.
2. Drop that connection and build a short-lived client over the server.
3. Race two signals: a transport error reported by the client, and the
   outcome of the client's liveness check. The first one decides; the other
   is dropped.

Both signals are delivered into a queue with room for a single result, using
put_nowait(). A late result finds the queue full and is discarded without
blocking whoever reported it.

Usage:
    from electrum_transport import DirectDialer, ServerInfo, check_server

    try:
        await check_server(server, DirectDialer(), client_factory)
    except ElectrumTransportError as e:
        print(e.user_message)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Type

from electrum_transport.backends import register_backends
from electrum_transport.config import ClientConfig
from electrum_transport.dialer import Dialer
from electrum_transport.errors import (
    CommunicationError,
    ElectrumTransportError,
    ProtocolCheckError,
)
from electrum_transport.types import ClientFactory, LivenessClient, Phase, ServerInfo

logger = logging.getLogger(__name__)


def _as_transport_error(
    error: BaseException,
    error_class: Type[ElectrumTransportError],
    message: str,
    address: str,
    phase: Phase,
) -> ElectrumTransportError:
    if isinstance(error, ElectrumTransportError):
        return error
    wrapped = error_class(f"{message}: {error}", address=address, phase=phase)
    wrapped.__cause__ = error
    return wrapped


class _FirstResult:
    """
    Single-slot result holder shared by the two racing branches.

    report() never blocks and may be called from any thread; everything
    after the first result is dropped.
    """

    def __init__(self, address: str) -> None:
        self._address = address
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Optional[ElectrumTransportError]] = asyncio.Queue(maxsize=1)

    def report(self, error: Optional[ElectrumTransportError]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._put(error)
            return
        try:
            self._loop.call_soon_threadsafe(self._put, error)
        except RuntimeError:
            # Loop already closed: the probe has long returned.
            logger.debug(f"Dropped late probe result for {self._address}: {error}")

    def _put(self, error: Optional[ElectrumTransportError]) -> None:
        try:
            self._queue.put_nowait(error)
        except asyncio.QueueFull:
            logger.debug(f"Dropped late probe result for {self._address}: {error}")

    async def get(self) -> Optional[ElectrumTransportError]:
        return await self._queue.get()


async def _close_client(client: LivenessClient, address: str) -> None:
    try:
        await client.close()
    except Exception as e:
        logger.debug(f"Error while closing probe client for {address}: {e}")


async def check_server(
    server: ServerInfo,
    dialer: Dialer,
    client_factory: ClientFactory,
    config: Optional[ClientConfig] = None,
) -> None:
    """
    Check that a server is reachable and speaks the Electrum protocol.

    No timeout is applied; wrap the call in asyncio.wait_for() for one.

    Args:
        server: Server to check
        dialer: Opens the underlying TCP streams
        client_factory: Builds the application-level client whose
            check_connection() is the liveness check
        config: Client settings (default: ClientConfig())

    Raises:
        DialError: If the server cannot be reached
        PinnedCertificateError: If the server's pin is missing or malformed
        CertificateVerificationError: If the server does not match its pin
        CommunicationError: If the client reported a transport error first
        ProtocolCheckError: If the liveness check failed first
    """
    effective_config = config or ClientConfig()
    address = server.server
    backends = register_backends([server], dialer)

    # Reachability is a precondition, not part of the race.
    conn = await backends[0].establish_connection()
    conn.abort()

    result = _FirstResult(address)

    def on_error(error: BaseException) -> None:
        result.report(
            _as_transport_error(
                error, CommunicationError, "Connection error", address, Phase.TRANSPORT
            )
        )

    client = client_factory(backends, on_error, effective_config)

    async def liveness() -> None:
        try:
            await client.check_connection()
        except Exception as e:
            result.report(
                _as_transport_error(
                    e, ProtocolCheckError, "Liveness check failed", address, Phase.LIVENESS
                )
            )
        else:
            result.report(None)

    task = asyncio.create_task(liveness(), name=f"liveness {backends[0].name}")
    try:
        error = await result.get()
    finally:
        # The losing branch is not awaited; its client is closed regardless.
        task.cancel()
        await _close_client(client, address)

    if error is not None:
        logger.info(f"Server check failed for {backends[0].name}: {error.detail}")
        raise error
    logger.info(f"Server check passed for {backends[0].name}")


def check_server_sync(
    server: ServerInfo,
    dialer: Dialer,
    client_factory: ClientFactory,
    config: Optional[ClientConfig] = None,
) -> None:
    """
    Sync wrapper for check_server.

    See check_server() for full documentation.
    """
    asyncio.run(check_server(server, dialer, client_factory, config))
