"""
Server startup module for SignalRelay application.
Provides the entry point for starting the signaling relay.
"""

import asyncio
import logging
import os
import ssl
from typing import Iterable, Optional

from SignalRelay.config import config
from SignalRelay.core.logging import auto_configure
from SignalRelay.core.server import create_server

logger = logging.getLogger(__name__)


def load_ssl_context(key_file: str, cert_file: str) -> Optional[ssl.SSLContext]:
    """
    Build a TLS server context from a key and certificate.

    Returns:
        The context, or None when either file is missing or unusable, in
        which case the relay serves plain ws://
    """
    if not (os.path.isfile(key_file) and os.path.isfile(cert_file)):
        logger.info("No TLS key/certificate at %s / %s, serving without TLS", key_file, cert_file)
        return None

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as e:
        logger.warning("Could not load TLS key/certificate (%s), serving without TLS", e)
        return None
    return context


def server(
    host: str = config.DEFAULT_HOST,
    port: int = config.DEFAULT_PORT,
    key_file: str = config.KEY_FILE,
    cert_file: str = config.CERT_FILE,
    allowed_origins: Optional[Iterable[str]] = None,
    env: Optional[str] = None
):
    """
    Start the signaling relay and serve until interrupted.

    Args:
        host: Address to listen on
        port: Port to listen on
        key_file: TLS private key (PEM)
        cert_file: TLS certificate (PEM)
        allowed_origins: Origins to accept; all are accepted when empty
        env: Logging preset (development, production, testing)
    """
    auto_configure(env)

    if allowed_origins is None:
        allowed_origins = config.ALLOWED_ORIGINS
    allowed_origins = list(allowed_origins)
    if not allowed_origins:
        logger.warning("Accepting WebSocket connections from any origin")

    relay = create_server(
        allowed_origins=allowed_origins,
        ssl_context=load_ssl_context(key_file, cert_file),
    )

    async def serve_forever():
        async with relay.run(host, port):
            await asyncio.Future()

    try:
        asyncio.run(serve_forever())
    except KeyboardInterrupt:
        logger.info("Closed by user.")
