"""
Transport layer for relay connections.

Wraps each websockets ServerConnection with its client id, username and an
outbound buffer, and keeps the registry of live connections.
"""

import asyncio
import logging
from typing import Dict, Iterator, List, Optional

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from SignalRelay.config import config
from SignalRelay.core.exceptions import DuplicateIDError, DuplicateUsernameError
from SignalRelay.core.server.interfaces import TransportConnection
from SignalRelay.core.server.session import ConnectionState

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """
    A live client link.

    ``send`` never waits on the network: payloads go into a bounded FIFO
    that a writer task drains to the socket, so a stalled client only
    stalls its own queue. When the queue is full the oldest payload is
    discarded.
    """

    def __init__(
        self,
        websocket: ServerConnection,
        client_id: int,
        queue_size: int = config.SEND_QUEUE_SIZE
    ):
        """
        Initialize WebSocket connection wrapper.

        Args:
            websocket: Underlying websockets connection
            client_id: Id assigned by the IdentityAllocator
            queue_size: Capacity of the outbound buffer
        """
        self._websocket = websocket
        self._client_id = client_id
        self.username: Optional[str] = None
        self.state = ConnectionState.CONNECTING
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._writer: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def client_id(self) -> int:
        return self._client_id

    @property
    def raw_websocket(self) -> ServerConnection:
        """Get underlying websockets connection."""
        return self._websocket

    @property
    def remote_address(self):
        return getattr(self._websocket, "remote_address", None)

    @property
    def pending(self) -> int:
        """Number of payloads waiting for the writer."""
        return self._queue.qsize()

    def open(self) -> None:
        """Mark the connection open and start draining its buffer."""
        if self.state is not ConnectionState.CONNECTING:
            return
        self.state = ConnectionState.OPEN
        self._writer = asyncio.create_task(
            self._write_loop(), name=f"relay-writer-{self._client_id}"
        )

    def send(self, message: str) -> bool:
        """
        Queue a message for delivery.

        Args:
            message: Serialized message

        Returns:
            False if the connection is closed, True otherwise
        """
        if self.state is ConnectionState.CLOSED:
            return False

        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Outbound buffer full for client %s, dropped oldest message (%d dropped so far)",
                self._client_id, self.dropped
            )
        self._queue.put_nowait(message)
        return True

    def is_open(self) -> bool:
        """Check if connection is open."""
        return self.state is ConnectionState.OPEN

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection and stop its writer. Safe to call repeatedly.

        Args:
            code: Close code
            reason: Close reason
        """
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Error closing connection for client %s: %s", self._client_id, e)

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._websocket.send(message)
            except ConnectionClosed:
                logger.debug("Client %s closed with %d messages pending",
                             self._client_id, self._queue.qsize())
                return
            except Exception as e:
                logger.exception("Writer for client %s failed: %s", self._client_id, e)
                return

    def __repr__(self) -> str:
        return f"<WebSocketConnection id={self._client_id} username={self.username!r} {self.state.name}>"


class ConnectionRegistry:
    """
    Ordered registry of live connections, in join order.

    Client ids are unique for the life of the registry; usernames are unique
    among registered connections. Not locked: the owning relay serializes
    every access.
    """

    def __init__(self):
        """Initialize connection registry."""
        self._connections: Dict[int, TransportConnection] = {}
        self._usernames: Dict[str, TransportConnection] = {}

    def add(self, connection: TransportConnection) -> None:
        """
        Register a new connection at the end of the join order.

        Raises:
            DuplicateIDError: If the client id is already registered
            DuplicateUsernameError: If the connection arrives with a taken name
        """
        if connection.client_id in self._connections:
            raise DuplicateIDError(connection.client_id)
        if connection.username is not None:
            holder = self._usernames.get(connection.username)
            if holder is not None:
                raise DuplicateUsernameError(connection.username, connection.client_id)
            self._usernames[connection.username] = connection
        self._connections[connection.client_id] = connection
        logger.debug("Registered client %s (%d connected)", connection.client_id, len(self._connections))

    def remove(self, connection: TransportConnection) -> bool:
        """
        Remove a connection. Removing an absent connection is a no-op.

        Returns:
            True if the connection was registered
        """
        if self._connections.get(connection.client_id) is not connection:
            return False
        del self._connections[connection.client_id]
        if connection.username is not None and self._usernames.get(connection.username) is connection:
            del self._usernames[connection.username]
        logger.debug("Unregistered client %s (%d connected)", connection.client_id, len(self._connections))
        return True

    def set_username(self, connection: TransportConnection, name: str) -> None:
        """
        Assign a username to a registered connection.

        Raises:
            DuplicateUsernameError: If another connection holds the name
        """
        holder = self._usernames.get(name)
        if holder is not None and holder is not connection:
            raise DuplicateUsernameError(name, connection.client_id)

        if connection.username is not None and self._usernames.get(connection.username) is connection:
            del self._usernames[connection.username]
        connection.username = name
        if self._connections.get(connection.client_id) is connection:
            self._usernames[name] = connection

    def find_by_id(self, client_id: object) -> Optional[TransportConnection]:
        """Get the connection with this client id, or None."""
        if isinstance(client_id, bool) or not isinstance(client_id, int):
            return None
        return self._connections.get(client_id)

    def find_by_username(self, name: object) -> Optional[TransportConnection]:
        """Get the connection holding this username, or None."""
        if not isinstance(name, str):
            return None
        return self._usernames.get(name)

    def snapshot_usernames(self) -> List[Optional[str]]:
        """Usernames in join order; None for connections that have not set one."""
        return [connection.username for connection in self._connections.values()]

    def connections(self) -> List[TransportConnection]:
        """Snapshot of registered connections in join order."""
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[TransportConnection]:
        return iter(self.connections())

    def __contains__(self, connection: object) -> bool:
        client_id = getattr(connection, "client_id", None)
        return client_id is not None and self._connections.get(client_id) is connection


__all__ = [
    'WebSocketConnection',
    'ConnectionRegistry',
]
