"""
Pinned certificate storage.

Keeps one PEM file per server address so that a certificate downloaded on
first contact is enforced on every later connection.

Environment Variables:
    ELECTRUM_TRANSPORT_PIN_DIR: Directory for pin files (default: a
        "pins" directory in the user config dir)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from platformdirs import user_config_dir

from electrum_transport.certificates import certificate_fingerprint, download_certificate
from electrum_transport.dialer import Dialer
from electrum_transport.verify import load_trusted_pool

logger = logging.getLogger(__name__)

PIN_DIR_ENV = "ELECTRUM_TRANSPORT_PIN_DIR"


def get_pin_dir() -> Path:
    """Get the directory where pinned certificates are stored."""
    override = os.environ.get(PIN_DIR_ENV)
    if override:
        return Path(override)
    return Path(user_config_dir("electrum-transport", "electrum-transport")) / "pins"


class PinStore:
    """
    File based store of pinned certificates, keyed by server address.

    Args:
        directory: Where to keep pin files (default: get_pin_dir())
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = Path(directory) if directory is not None else get_pin_dir()

    def path_for(self, address: str) -> Path:
        """
        File name for a server, e.g. "electrum.example.org%3A50002.pem".

        The address is percent-encoded, so distinct addresses never share a file.
        """
        return self.directory / f"{quote(address, safe='')}.pem"

    def load(self, address: str) -> Optional[str]:
        """Get the pinned PEM for a server, or None if none is stored."""
        path = self.path_for(address)
        if not path.exists():
            return None
        return path.read_text(encoding="ascii")

    def save(self, address: str, pem: str) -> Path:
        """
        Store the pinned PEM for a server, replacing any previous pin.

        Raises:
            PinnedCertificateError: If pem holds no parseable certificate
        """
        load_trusted_pool(pem, address)

        path = self.path_for(address)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(pem, encoding="ascii")
        logger.info(f"Pinned certificate for {address} saved to {path}")
        return path

    def remove(self, address: str) -> bool:
        """Delete the pin for a server. Returns False if there was none."""
        path = self.path_for(address)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Removed pinned certificate for {address}")
        return True


async def pin_server_certificate(
    address: str,
    dialer: Dialer,
    store: Optional[PinStore] = None,
) -> str:
    """
    Download a server's certificate and pin it.

    Trust on first use: whatever the server presents now is trusted from
    then on. Show the fingerprint to the user where possible.

    Returns:
        The pinned PEM
    """
    pins = store or PinStore()
    pem = await download_certificate(address, dialer)
    pins.save(address, pem)
    logger.info(f"Pinned {address} with SHA-256 fingerprint {certificate_fingerprint(pem)}")
    return pem
