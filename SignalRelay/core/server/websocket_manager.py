"""
Signaling relay server that composes the registry, allocator and router.

This is the main entry point: it accepts WebSocket connections, drives each
one through CONNECTING -> OPEN -> CLOSED and keeps every client's roster
in step with joins, renames and departures.

Connection lifecycle:
    1. Handshake; the origin policy may refuse it with HTTP 403
    2. Open: allocate a client id, register, send {"type": "id"}
    3. Each text frame is parsed and handed to the MessageRouter
    4. Closed: unregister and broadcast the new roster

Registry access from all connections goes through a single asyncio.Lock,
so a rename's uniqueness check, the assignment and the roster it triggers
are applied as one step.
"""

import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Callable, Iterable, List, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from SignalRelay.config import config
from SignalRelay.core.exceptions import DuplicateIDError, ProtocolError
from SignalRelay.core.message.protocol import Message
from SignalRelay.core.server.interfaces import (
    OriginPolicy,
    ServerLifecycle,
    accept_all_origins,
    allow_list_policy,
)
from SignalRelay.core.server.routing import MessageRouter
from SignalRelay.core.server.session import IdentityAllocator
from SignalRelay.core.server.transport import ConnectionRegistry, WebSocketConnection

logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[WebSocketConnection], None]


class SignalingRelay(ServerLifecycle):
    """
    WebSocket signaling relay.

    Example:
        relay = SignalingRelay(origin_policy=allow_list_policy(["https://chat.example.com"]))

        async with relay.run("0.0.0.0", 3000):
            await asyncio.Future()
    """

    def __init__(
        self,
        origin_policy: Optional[OriginPolicy] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        subprotocol: str = config.SUBPROTOCOL,
        send_queue_size: int = config.SEND_QUEUE_SIZE,
        ping_interval: Optional[float] = config.PING_INTERVAL,
        ping_timeout: Optional[float] = config.PING_TIMEOUT,
        on_connect: Optional[ConnectionCallback] = None,
        on_disconnect: Optional[ConnectionCallback] = None,
        id_seed: Optional[int] = None
    ):
        """
        Initialize the relay.

        Args:
            origin_policy: Predicate over the Origin header; accepts all if None
            ssl_context: TLS context for wss://, plain ws:// if None
            subprotocol: WebSocket sub-protocol offered to clients
            send_queue_size: Outbound buffer size per connection
            ping_interval: Keepalive ping interval in seconds (None disables)
            ping_timeout: Keepalive ping timeout in seconds
            on_connect: Called with each connection once it is open
            on_disconnect: Called with each connection after it is removed
            id_seed: First client id (defaults to the current time in ms)
        """
        self._origin_policy = origin_policy or accept_all_origins
        self._ssl_context = ssl_context
        self._subprotocol = subprotocol
        self._send_queue_size = send_queue_size
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect

        self._registry = ConnectionRegistry()
        self._allocator = IdentityAllocator(self._registry, seed=id_seed)
        self._router = MessageRouter(self._registry, self._allocator)
        self._lock = asyncio.Lock()

        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._server: Optional[Server] = None
        self._running = False

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def allocator(self) -> IdentityAllocator:
        return self._allocator

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (resolves port 0 after start)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    @asynccontextmanager
    async def run(self, host: str = config.DEFAULT_HOST, port: int = config.DEFAULT_PORT):
        """
        Run the relay as an async context manager.

        Yields:
            The relay instance
        """
        await self.start(host, port)
        try:
            yield self
        finally:
            await self.stop()

    async def start(self, host: str = config.DEFAULT_HOST, port: int = config.DEFAULT_PORT) -> None:
        """
        Start listening.

        Args:
            host: Host to bind to
            port: Port to listen on (0 picks a free port)
        """
        self._host = host
        self._port = port

        self._server = await serve(
            self._handle_connection,
            host,
            port,
            process_request=self._check_origin,
            subprotocols=[self._subprotocol],
            ssl=self._ssl_context,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
        )
        self._running = True

        scheme = "wss" if self._ssl_context else "ws"
        logger.info("Signaling relay listening on %s://%s:%s", scheme, host, self.port)

    async def stop(self) -> None:
        """Close every connection and stop listening."""
        self._running = False

        await asyncio.gather(*(
            connection.close(1001, "Server shutting down")
            for connection in self._registry.connections()
        ))

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("Signaling relay stopped")

    def _check_origin(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        origin = request.headers.get("Origin")
        if self._origin_policy(origin):
            return None
        logger.warning("Connection from origin %r rejected", origin)
        return connection.respond(HTTPStatus.FORBIDDEN, "Origin not allowed\n")

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Drive one connection from open to closed."""
        connection = None
        try:
            async with self._lock:
                connection = WebSocketConnection(
                    websocket,
                    self._allocator.next_client_id(),
                    self._send_queue_size
                )
                self._registry.add(connection)
                connection.open()
                self._router.send_to_connection(connection, Message.client_id(connection.client_id).serialize())

            logger.info("Connection accepted from %s as client %s",
                        connection.remote_address, connection.client_id)
            self._notify(self._on_connect, connection)

            await self._message_loop(connection)

        except ConnectionClosed:
            logger.debug("Connection lost for client %s",
                         connection.client_id if connection else "unknown")
        except DuplicateIDError as e:
            logger.critical("Client id allocator produced a duplicate: %s", e, exc_info=True)
            raise
        except Exception as e:
            logger.exception("Error handling connection: %s", e)
        finally:
            if connection is not None:
                await self._cleanup_connection(connection)

    async def _message_loop(self, connection: WebSocketConnection) -> None:
        """Feed each inbound text frame to the router until the socket closes."""
        async for frame in connection.raw_websocket:
            if isinstance(frame, bytes):
                logger.debug("Ignoring binary frame from client %s", connection.client_id)
                continue

            logger.debug("Received from client %s: %s", connection.client_id, frame)
            try:
                message = Message.deserialize(frame)
                async with self._lock:
                    if connection.is_open():
                        self._router.handle(connection, message)
            except ProtocolError as e:
                logger.warning("Dropped message from client %s: %s", connection.client_id, e)

    async def _cleanup_connection(self, connection: WebSocketConnection) -> None:
        """Unregister a closed connection and tell everyone else."""
        async with self._lock:
            removed = self._registry.remove(connection)
            if removed:
                self._router.broadcast_user_list()

        await connection.close()

        websocket = connection.raw_websocket
        logger.info(
            "Connection closed: %s, client %s (%s: %s)",
            connection.remote_address,
            connection.client_id,
            getattr(websocket, "close_code", None),
            getattr(websocket, "close_reason", None) or "no reason",
        )

        if removed:
            self._notify(self._on_disconnect, connection)

    @staticmethod
    def _notify(callback: Optional[ConnectionCallback], connection: WebSocketConnection) -> None:
        if callback is None:
            return
        try:
            callback(connection)
        except Exception as e:
            logger.exception("Error in connection callback for client %s: %s", connection.client_id, e)

    async def broadcast_user_list(self) -> None:
        """Send the current roster to every client."""
        async with self._lock:
            self._router.broadcast_user_list()

    def get_usernames(self) -> List[Optional[str]]:
        """Current roster in join order."""
        return self._registry.snapshot_usernames()


def create_server(
    allowed_origins: Optional[Iterable[str]] = None,
    **kwargs
) -> SignalingRelay:
    """
    Factory function to create a configured relay.

    Args:
        allowed_origins: Origins to accept; every origin is accepted when
                         empty and no ``origin_policy`` is given
        **kwargs: Additional arguments passed to SignalingRelay

    Returns:
        Configured SignalingRelay instance
    """
    origins = list(allowed_origins or [])
    if origins and "origin_policy" not in kwargs:
        kwargs["origin_policy"] = allow_list_policy(origins)
    return SignalingRelay(**kwargs)
