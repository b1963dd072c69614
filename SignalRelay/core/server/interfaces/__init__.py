"""
Abstract base classes and interfaces for the server module.

This module defines the contracts shared by the registry, the router and
the lifecycle manager, so each can be tested against lightweight fakes.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable


@runtime_checkable
class TransportConnection(Protocol):
    """Protocol for a client link the relay can push messages to."""

    @property
    def client_id(self) -> int:
        """Process-unique id assigned at connect time."""
        ...

    username: Optional[str]

    def send(self, message: str) -> bool:
        """
        Queue a serialized message for delivery.

        Must not block. Returns False when the connection can no longer
        deliver (it is closed).
        """
        ...

    def is_open(self) -> bool:
        """Check if the connection still accepts messages."""
        ...


OriginPolicy = Callable[[Optional[str]], bool]
"""Predicate over the request's Origin header (None when absent)."""


def accept_all_origins(origin: Optional[str]) -> bool:
    """
    Default origin policy: every origin is accepted.

    Any page on any site can then open a relay connection from a visitor's
    browser. Deployments should pass ``allow_list_policy`` or their own
    predicate instead.
    """
    return True


def allow_list_policy(origins: Iterable[str], allow_missing: bool = False) -> OriginPolicy:
    """
    Build an origin policy that accepts only the listed origins.

    Args:
        origins: Exact origins such as ``https://chat.example.com``
        allow_missing: Accept requests that send no Origin header
                       (non-browser clients)

    Returns:
        Origin predicate
    """
    allowed = frozenset(origin.rstrip("/") for origin in origins)

    def policy(origin: Optional[str]) -> bool:
        if origin is None:
            return allow_missing
        return origin.rstrip("/") in allowed

    return policy


class ServerLifecycle(ABC):
    """Abstract base class for server lifecycle management."""

    @abstractmethod
    async def start(self, host: str, port: int) -> None:
        """Start the server."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the server."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if server is running."""
        pass


__all__ = [
    'TransportConnection',
    'OriginPolicy',
    'accept_all_origins',
    'allow_list_policy',
    'ServerLifecycle',
]
