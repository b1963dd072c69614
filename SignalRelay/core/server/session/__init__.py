"""
Session identity for the relay.

Issues process-unique client ids and resolves username collisions.
"""

import itertools
import logging
import time
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from SignalRelay.core.server.transport import ConnectionRegistry

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of a single client connection. CLOSED is terminal."""
    CONNECTING = auto()
    OPEN = auto()
    CLOSED = auto()


class IdentityAllocator:
    """
    Allocates client ids and unique usernames.

    Ids start at the allocator's creation time in milliseconds and grow by
    one per connection, so a restarted process does not hand out the ids of
    the previous one. The username suffix counter is shared by every
    collision and never reset: the first clash on "Alice" yields "Alice1",
    a later clash on any name uses 2, and so on.
    """

    def __init__(self, registry: 'ConnectionRegistry', seed: Optional[int] = None):
        """
        Initialize the allocator.

        Args:
            registry: Registry consulted for username uniqueness
            seed: First client id (defaults to the current time in ms)
        """
        self._registry = registry
        if seed is None:
            seed = int(time.time() * 1000)
        self._ids = itertools.count(seed)
        self._suffixes = itertools.count(1)

    def next_client_id(self) -> int:
        """Return an id greater than every id issued before."""
        return next(self._ids)

    def ensure_unique_username(self, requested: str) -> Tuple[str, bool]:
        """
        Resolve a requested username against the registry.

        Every registered connection counts, including the requester: a
        client re-claiming its own name is given a suffixed one.

        Args:
            requested: The name the client asked for

        Returns:
            Tuple of (final name, whether it differs from ``requested``)
        """
        name = requested
        changed = False
        while self._registry.find_by_username(name) is not None:
            name = f"{requested}{next(self._suffixes)}"
            changed = True

        if changed:
            logger.debug("Username %r taken, assigned %r", requested, name)
        return name, changed

__all__ = [
    'ConnectionState',
    'IdentityAllocator',
]
