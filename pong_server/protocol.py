"""WebSocket message protocol definitions for the pong server.

Two framings share the channel: JSON objects with a ``type`` field, and plain
text lifecycle notices. Clients must accept both.
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Union
import json

from pong.state import Direction, GameState, Role


class ServerMessageType(Enum):
    """JSON message types sent from server to client."""
    PLAYER_INFO = "PLAYER_INFO"
    GAME_STATE = "GAME_STATE"


class ClientMessageType(Enum):
    """JSON message types sent from client to server."""
    MOVEMENT = "MOVEMENT"


# Plain-text lifecycle notices
NOTICE_PLAYER_JOINED = "new player joined: {role}"
NOTICE_WAITING = "waiting for opponent"
NOTICE_DISCONNECTED = "player disconnected"
NOTICE_START = "start game"


class ProtocolError(ValueError):
    """Raised when an inbound frame cannot be decoded."""


@dataclass
class Message:
    """A JSON message; ``data`` fields sit beside ``type`` at the top level."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps({"type": self.type, **self.data})

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> 'Message':
        """Deserialize message from a text frame.

        Raises:
            ProtocolError: for binary frames, invalid JSON or non-object JSON.
        """
        if not isinstance(raw, str):
            raise ProtocolError("binary frames are not supported")
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"invalid JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ProtocolError("message must be a JSON object")
        msg_type = obj.pop("type", "")
        return cls(type=msg_type if isinstance(msg_type, str) else "", data=obj)


@dataclass
class MovementCommand:
    """Decoded MOVEMENT message.

    ``role`` and ``direction`` are None when the client sent a value outside
    the protocol; such commands are dropped by the session.
    """
    player_id: str
    role: Optional[Role]
    direction: Optional[Direction]


# Server -> Client message builders
def player_info_message(role: Role, connection_id: str) -> Message:
    """Tell one client which seat it holds."""
    return Message(
        type=ServerMessageType.PLAYER_INFO.value,
        data={"role": role.value, "id": connection_id}
    )


def game_state_message(state: Union[GameState, Dict[str, Any]]) -> Message:
    """Build the per-tick state snapshot."""
    snapshot = state.to_dict() if isinstance(state, GameState) else state
    return Message(type=ServerMessageType.GAME_STATE.value, data=dict(snapshot))


def player_joined_notice(role: Role) -> str:
    return NOTICE_PLAYER_JOINED.format(role=role.value)


# Client -> Server message parsers
def parse_movement_message(data: Dict[str, Any]) -> MovementCommand:
    """Parse a MOVEMENT message's fields.

    A missing or null field reads as an empty string, so the resulting
    command carries an unknown role or direction and is dropped later.

    Raises:
        ProtocolError: if a field is present but is not a string.
    """
    values = {}
    for key in ("direction", "playerId", "playerRole"):
        value = data.get(key)
        if value is None:
            value = ""
        elif not isinstance(value, str):
            raise ProtocolError(f"MOVEMENT field {key!r} must be a string")
        values[key] = value

    return MovementCommand(
        player_id=values["playerId"],
        role=Role.parse(values["playerRole"]),
        direction=Direction.parse(values["direction"]),
    )


def decode_client_message(raw: Union[str, bytes]) -> Optional[MovementCommand]:
    """Decode one inbound frame.

    Returns the movement command for MOVEMENT messages and None for any other
    message type, which the server ignores.
    """
    msg = Message.from_json(raw)
    if msg.type == ClientMessageType.MOVEMENT.value:
        return parse_movement_message(msg.data)
    return None
