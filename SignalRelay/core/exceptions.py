"""
Exception classes for the relay server.

Protocol errors are per-message and never close a connection; duplicate
client ids signal a broken allocator and are treated as fatal.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(self, message: str, client_id: Optional[int] = None):
        """
        Initialize relay error.

        Args:
            message: Error message
            client_id: Id of the connection involved, if known
        """
        self.client_id = client_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.client_id is not None:
            return f"[client {self.client_id}] {super().__str__()}"
        return super().__str__()


class ProtocolError(RelayError):
    """Raised when an inbound frame is malformed or carries invalid fields."""
    pass


class UnknownSenderError(ProtocolError):
    """Raised when a message's sender id does not resolve to its connection."""

    def __init__(self, sender_id: object, client_id: Optional[int] = None):
        """
        Initialize unknown sender error.

        Args:
            sender_id: The id claimed by the message
            client_id: Id of the connection the message arrived on
        """
        self.sender_id = sender_id
        super().__init__(f"Sender id {sender_id!r} does not match any connection", client_id)


class DuplicateIDError(RelayError):
    """Raised when a client id is registered twice. Indicates an allocator bug."""

    def __init__(self, client_id: int):
        super().__init__(f"Client id {client_id} is already registered", client_id)


class DuplicateUsernameError(RelayError):
    """Raised when a username is assigned while another connection holds it."""

    def __init__(self, username: str, client_id: Optional[int] = None):
        self.username = username
        super().__init__(f"Username {username!r} is already taken", client_id)


__all__ = [
    'RelayError',
    'ProtocolError',
    'UnknownSenderError',
    'DuplicateIDError',
    'DuplicateUsernameError',
]
