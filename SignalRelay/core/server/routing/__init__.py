"""
Message routing for the relay.

Decides, per inbound message, what to change and who receives it:

- ``message``: tags stripped from ``text``, ``name`` stamped with the
  sender's username, then broadcast or sent to ``target``
- ``username``: name made unique, sender told if it was altered, roster
  broadcast to everyone
- anything else: forwarded untouched, to ``target`` if set or to everyone

Targets are usernames. A target nobody holds is dropped silently; the
sender gets no notice either way.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional

from SignalRelay.core.exceptions import ProtocolError, UnknownSenderError
from SignalRelay.core.message.protocol import Message, MessageType, sanitize_text
from SignalRelay.core.server.interfaces import TransportConnection
from SignalRelay.core.server.session import IdentityAllocator
from SignalRelay.core.server.transport import ConnectionRegistry

logger = logging.getLogger(__name__)


class DeliveryStatus(Enum):
    """Status of message delivery."""
    DELIVERED = auto()  # queued on the recipient's connection
    DROPPED = auto()  # recipient already closed
    TARGET_NOT_FOUND = auto()  # no connection holds the target username


@dataclass
class DeliveryResult:
    """Result of message delivery attempt."""
    status: DeliveryStatus
    client_id: Optional[int] = None
    target: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


class MessageRouter:
    """
    Routes inbound messages to their recipients.

    Every method is synchronous and only queues payloads on connections;
    the caller is responsible for serializing calls against the registry.
    """

    def __init__(self, registry: ConnectionRegistry, allocator: IdentityAllocator):
        """
        Initialize message router.

        Args:
            registry: Registry of live connections
            allocator: Allocator used to resolve username collisions
        """
        self._registry = registry
        self._allocator = allocator

    def handle(self, sender: TransportConnection, message: Message) -> List[DeliveryResult]:
        """
        Apply the routing rules for one inbound message.

        Args:
            sender: Connection the message arrived on
            message: Parsed message

        Returns:
            One DeliveryResult per attempted delivery

        Raises:
            UnknownSenderError: If the message's ``id`` is not the sender's
            ProtocolError: If a ``username`` message has no usable name
        """
        self._check_sender(sender, message)

        kind = message.kind
        if kind is MessageType.USERNAME:
            return self._handle_username(sender, message)
        if kind is MessageType.MESSAGE:
            message.set("name", sender.username)
            if "text" in message.payload:
                message.set("text", sanitize_text(message.get("text")))

        return self._forward(message)

    def _check_sender(self, sender: TransportConnection, message: Message) -> None:
        # Signaling messages from the browser client carry no id
        if "id" not in message.payload:
            return
        if self._registry.find_by_id(message.sender_id) is not sender:
            raise UnknownSenderError(message.sender_id, sender.client_id)

    def _handle_username(self, sender: TransportConnection, message: Message) -> List[DeliveryResult]:
        requested = message.get("name")
        if not isinstance(requested, str) or not requested.strip():
            raise ProtocolError(f"Invalid username {requested!r}", sender.client_id)

        name, changed = self._allocator.ensure_unique_username(requested)

        results = []
        if changed:
            notice = Message.reject_username(sender.client_id, name)
            results.append(self.send_to_connection(sender, notice.serialize()))

        previous = sender.username
        self._registry.set_username(sender, name)
        logger.info("Client %s is now known as %r (was %r)", sender.client_id, name, previous)

        results.extend(self.broadcast_user_list().values())
        return results

    def _forward(self, message: Message) -> List[DeliveryResult]:
        payload = message.serialize()
        target = message.target
        if target:
            return [self.send_to_username(target, payload)]
        return list(self.broadcast(payload).values())

    def send_to_connection(self, connection: TransportConnection, payload: str) -> DeliveryResult:
        """Queue a serialized message on one connection."""
        if connection.send(payload):
            return DeliveryResult(DeliveryStatus.DELIVERED, connection.client_id, connection.username)
        logger.debug("Dropped message for closed client %s", connection.client_id)
        return DeliveryResult(DeliveryStatus.DROPPED, connection.client_id, connection.username)

    def send_to_username(self, username: str, payload: str) -> DeliveryResult:
        """
        Queue a serialized message for the connection holding ``username``.

        An unknown username drops the message.
        """
        connection = self._registry.find_by_username(username)
        if connection is None:
            logger.debug("Target %r not connected, message dropped", username)
            return DeliveryResult(DeliveryStatus.TARGET_NOT_FOUND, target=username)
        return self.send_to_connection(connection, payload)

    def broadcast(self, payload: str) -> Dict[int, DeliveryResult]:
        """Queue a serialized message on every registered connection."""
        return {
            connection.client_id: self.send_to_connection(connection, payload)
            for connection in self._registry.connections()
        }

    def broadcast_user_list(self) -> Dict[int, DeliveryResult]:
        """
        Send the current roster to every registered connection.

        The roster is taken from one registry snapshot and serialized once.
        """
        roster = Message.user_list(self._registry.snapshot_usernames())
        return self.broadcast(roster.serialize())


__all__ = [
    'MessageRouter',
    'DeliveryResult',
    'DeliveryStatus',
]
