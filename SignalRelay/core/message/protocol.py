"""
Message protocol module for SignalRelay application.
Defines the JSON wire messages exchanged between browser clients and the relay.

Every frame is a JSON object with a string ``type``. A handful of types are
interpreted by the relay; all others are opaque signaling that is forwarded
with every field intact, so clients can add message types without server
changes.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from SignalRelay.core.exceptions import ProtocolError


class MessageType(Enum):
    """
    Message types known to the relay.
    """
    ID = "id"  # Server -> client: assigned client id
    USERLIST = "userlist"  # Server -> client: roster snapshot
    REJECT_USERNAME = "rejectusername"  # Server -> client: requested name was altered
    MESSAGE = "message"  # Chat text, broadcast or targeted
    USERNAME = "username"  # Client -> server: claim a display name
    VIDEO_OFFER = "video-offer"
    VIDEO_ANSWER = "video-answer"
    NEW_ICE_CANDIDATE = "new-ice-candidate"
    HANG_UP = "hang-up"

    @classmethod
    def lookup(cls, value: str) -> Optional['MessageType']:
        """Return the member for ``value`` or None for opaque types."""
        try:
            return cls(value)
        except ValueError:
            return None


# <script> and <style> elements go with their content, any other tag alone
_BLOCK_TAG_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"(<([^>]+)>)", re.IGNORECASE)


def sanitize_text(text: Any) -> Any:
    """
    Strip HTML-like tags from chat text.

    This removes markup, it does not escape: a lone ``<`` or ``>`` that does
    not form a tag is kept, so renderers must still treat the text as
    untrusted. Non-string values are returned unchanged.
    """
    if not isinstance(text, str):
        return text
    return _TAG_RE.sub("", _BLOCK_TAG_RE.sub("", text))


@dataclass
class Message:
    """
    A wire message: its type tag plus every field it was sent with.

    Attributes:
        type (str): The ``type`` field
        payload (dict): All fields, ``type`` included
        raw (str, optional): The exact text the message was parsed from
    """
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    raw: Optional[str] = None

    def __post_init__(self):
        self.payload["type"] = self.type

    @property
    def kind(self) -> Optional[MessageType]:
        """The known message type, or None for opaque pass-through types."""
        return MessageType.lookup(self.type)

    @property
    def sender_id(self) -> Any:
        return self.payload.get("id")

    @property
    def target(self) -> Any:
        return self.payload.get("target")

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.payload[key] = value
        # Mutated messages are re-serialized
        self.raw = None

    def serialize(self) -> str:
        """
        Serialize the message to a JSON string.

        Returns:
            str: The original text when the message is unmodified, else a
            fresh JSON encoding of the payload
        """
        if self.raw is not None:
            return self.raw
        return json.dumps(self.payload)

    @classmethod
    def deserialize(cls, data: Union[str, bytes]) -> 'Message':
        """
        Create a Message object from a JSON string.

        Args:
            data: JSON text received from a client

        Returns:
            Message: Deserialized message object

        Raises:
            ProtocolError: If the data is not a JSON object with a string type
        """
        if isinstance(data, bytes):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ProtocolError(f"Frame is not valid UTF-8: {e}") from e
        # ValueError also covers over-long integer literals, RecursionError deep nesting
        try:
            obj = json.loads(data)
        except (ValueError, RecursionError) as e:
            raise ProtocolError(f"Malformed JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(obj).__name__}")
        msg_type = obj.get("type")
        if not isinstance(msg_type, str) or not msg_type:
            raise ProtocolError("Message has no type")
        return cls(type=msg_type, payload=obj, raw=data)

    @classmethod
    def client_id(cls, client_id: int) -> 'Message':
        """Build the ``id`` message sent to a newly accepted client."""
        return cls(MessageType.ID.value, {"id": client_id})

    @classmethod
    def user_list(cls, users: List[Optional[str]]) -> 'Message':
        """Build a ``userlist`` roster message."""
        return cls(MessageType.USERLIST.value, {"users": list(users)})

    @classmethod
    def reject_username(cls, client_id: int, name: str) -> 'Message':
        """Build the notice sent when a requested username was altered."""
        return cls(MessageType.REJECT_USERNAME.value, {"id": client_id, "name": name})
