"""
Command-line probe for a running relay.

Connects, claims a username and prints what the relay answers. Useful to
check that a deployment is reachable and routing rosters.
"""

import asyncio
import json
import logging
from typing import List, Optional

from websockets.asyncio.client import connect

from SignalRelay.config import config
from SignalRelay.core.message.protocol import Message, MessageType

logger = logging.getLogger(__name__)


async def claim_username(
    uri: str,
    name: str,
    timeout: float = 5.0
) -> List[Optional[str]]:
    """
    Connect to the relay at ``uri``, claim ``name`` and return the roster.

    Args:
        uri: ws:// or wss:// address of the relay
        name: Username to claim
        timeout: Seconds to wait for each server reply

    Returns:
        The first roster received after the claim
    """
    async with connect(uri, subprotocols=[config.SUBPROTOCOL]) as websocket:
        greeting = Message.deserialize(await asyncio.wait_for(websocket.recv(), timeout))
        if greeting.kind is not MessageType.ID:
            raise RuntimeError(f"Expected an id message, got {greeting.type!r}")
        client_id = greeting.sender_id
        print(f"Connected as client {client_id}")

        await websocket.send(json.dumps({"type": "username", "name": name, "id": client_id}))

        while True:
            reply = Message.deserialize(await asyncio.wait_for(websocket.recv(), timeout))
            if reply.kind is MessageType.REJECT_USERNAME:
                print(f"Username {name!r} was taken, relay assigned {reply.get('name')!r}")
            elif reply.kind is MessageType.USERLIST:
                users = reply.get("users", [])
                print(f"Roster: {users}")
                return users
            else:
                logger.debug("Ignoring %s message while waiting for roster", reply.type)


def probe(name: str, host: str = "localhost", port: int = config.DEFAULT_PORT, secure: bool = False):
    """Run ``claim_username`` against ``host:port`` and return the roster."""
    scheme = "wss" if secure else "ws"
    return asyncio.run(claim_username(f"{scheme}://{host}:{port}", name))
