# pong_server/events.py
"""Event types consumed by the event dispatcher."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


class ServerEventType(Enum):
    """All events the dispatcher understands."""

    # Connection lifecycle
    CONNECTION_JOINED = auto()
    CONNECTION_LEFT = auto()

    # Outbound
    BROADCAST = auto()

    # Session control
    RESTART_REQUESTED = auto()

    # Dispatcher lifecycle
    SHUTDOWN = auto()


@dataclass
class ServerEvent:
    """A single unit of work for the dispatcher.

    ``connection`` is set for CONNECTION_JOINED, ``connection_id`` for
    CONNECTION_LEFT and ``payload`` for BROADCAST.
    """

    type: ServerEventType
    connection: Optional[Any] = None
    connection_id: Optional[str] = None
    payload: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
