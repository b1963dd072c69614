"""
Server module for SignalRelay.

Architecture Overview:
---------------------

1. **Transport** (`transport/`)
   - WebSocketConnection: client id, username and buffered sender
   - ConnectionRegistry: live connections in join order

2. **Session** (`session/`)
   - IdentityAllocator: client ids and unique usernames
   - ConnectionState: CONNECTING -> OPEN -> CLOSED

3. **Routing** (`routing/`)
   - MessageRouter: mutate-and-broadcast, unicast or pass-through
   - DeliveryResult / DeliveryStatus

4. **Relay** (`websocket_manager.py`)
   - SignalingRelay: connection lifecycle and roster broadcasts
   - create_server: factory

5. **Interfaces** (`interfaces/`)
   - TransportConnection, OriginPolicy, ServerLifecycle

Usage:

    from SignalRelay.core.server import create_server

    relay = create_server(allowed_origins=["https://chat.example.com"])
    async with relay.run("0.0.0.0", 3000):
        await asyncio.Future()
"""

from SignalRelay.core.server.interfaces import (
    OriginPolicy,
    ServerLifecycle,
    TransportConnection,
    accept_all_origins,
    allow_list_policy,
)
from SignalRelay.core.server.routing import DeliveryResult, DeliveryStatus, MessageRouter
from SignalRelay.core.server.session import ConnectionState, IdentityAllocator
from SignalRelay.core.server.transport import ConnectionRegistry, WebSocketConnection
from SignalRelay.core.server.websocket_manager import SignalingRelay, create_server

__all__ = [
    'OriginPolicy',
    'ServerLifecycle',
    'TransportConnection',
    'accept_all_origins',
    'allow_list_policy',
    'DeliveryResult',
    'DeliveryStatus',
    'MessageRouter',
    'ConnectionState',
    'IdentityAllocator',
    'ConnectionRegistry',
    'WebSocketConnection',
    'SignalingRelay',
    'create_server',
]
