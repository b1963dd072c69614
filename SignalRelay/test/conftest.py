"""
Test configuration and fixtures for SignalRelay tests.

Provides:
- FakeConnection, an in-memory TransportConnection
- registry / allocator / router fixtures for unit tests
- a live relay on an ephemeral port and a small JSON client for
  integration tests
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from websockets.asyncio.client import ClientConnection, connect

from SignalRelay.config import config
from SignalRelay.core.logging import configure_logging, create_testing_config
from SignalRelay.core.server import (
    ConnectionRegistry,
    IdentityAllocator,
    MessageRouter,
    SignalingRelay,
)


@dataclass
class FakeConnection:
    """In-memory stand-in for WebSocketConnection that records what it is sent."""
    client_id: int
    username: Optional[str] = None
    sent: List[str] = field(default_factory=list)
    closed: bool = False

    def send(self, message: str) -> bool:
        if self.closed:
            return False
        self.sent.append(message)
        return True

    def is_open(self) -> bool:
        return not self.closed

    @property
    def received(self) -> List[Dict[str, Any]]:
        return [json.loads(message) for message in self.sent]

    def received_types(self) -> List[str]:
        return [message["type"] for message in self.received]


class RelayClient:
    """Minimal JSON client for a running relay."""

    def __init__(self, websocket: ClientConnection):
        self.websocket = websocket
        self.client_id: Optional[int] = None

    @classmethod
    async def connect(cls, url: str, **kwargs) -> 'RelayClient':
        websocket = await connect(url, subprotocols=[config.SUBPROTOCOL], **kwargs)
        client = cls(websocket)
        greeting = await client.recv()
        assert greeting["type"] == "id"
        client.client_id = greeting["id"]
        return client

    async def send(self, **fields) -> None:
        await self.websocket.send(json.dumps(fields))

    async def recv(self, timeout: float = 2.0) -> Dict[str, Any]:
        return json.loads(await asyncio.wait_for(self.websocket.recv(), timeout))

    async def recv_type(self, msg_type: str, timeout: float = 2.0) -> Dict[str, Any]:
        """Read until a message of ``msg_type`` arrives."""
        while True:
            message = await self.recv(timeout)
            if message["type"] == msg_type:
                return message

    async def drain(self, timeout: float = 0.3) -> List[Dict[str, Any]]:
        """Read everything that arrives before ``timeout`` seconds of silence."""
        messages = []
        while True:
            try:
                messages.append(await self.recv(timeout))
            except asyncio.TimeoutError:
                return messages

    async def join(self, name: str) -> Dict[str, Any]:
        """Claim ``name`` and return the roster that follows."""
        await self.send(type="username", name=name, id=self.client_id)
        return await self.recv_type("userlist")

    async def close(self) -> None:
        await self.websocket.close()


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.02) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture(scope="session", autouse=True)
def testing_logging():
    """Console-only logging for the test run."""
    configure_logging(create_testing_config())


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def allocator(registry: ConnectionRegistry) -> IdentityAllocator:
    return IdentityAllocator(registry, seed=1000)


@pytest.fixture
def router(registry: ConnectionRegistry, allocator: IdentityAllocator) -> MessageRouter:
    return MessageRouter(registry, allocator)


@pytest.fixture
def connect_fake(registry: ConnectionRegistry, allocator: IdentityAllocator):
    """Register FakeConnections the way the relay registers real ones."""
    def _connect(username: Optional[str] = None) -> FakeConnection:
        connection = FakeConnection(allocator.next_client_id())
        registry.add(connection)
        if username is not None:
            registry.set_username(connection, username)
        return connection
    return _connect


@pytest_asyncio.fixture
async def relay():
    """A relay listening on an ephemeral localhost port."""
    server = SignalingRelay(ping_interval=None)
    await server.start("127.0.0.1", 0)
    yield server
    await server.stop()


@pytest.fixture
def relay_url(relay: SignalingRelay) -> str:
    return f"ws://127.0.0.1:{relay.port}"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (opens local sockets)"
    )
