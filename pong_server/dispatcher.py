"""Event dispatcher: the single writer of registry membership.

Connection threads never change membership themselves. They queue
CONNECTION_JOINED / CONNECTION_LEFT events here and a dedicated thread applies
them one at a time, in order, together with everything that follows from a
membership change (lifecycle notices, starting and stopping the session).
"""

import logging
import queue
import threading
from typing import Callable, Dict, Optional

from pong.state import Role
from pong_server.events import ServerEvent, ServerEventType
from pong_server.protocol import (
    NOTICE_DISCONNECTED, NOTICE_START, NOTICE_WAITING,
    player_info_message, player_joined_notice,
)
from pong_server.registry import Connection, ConnectionRegistry
from pong_server.session import GameSession

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Processes server events sequentially on its own thread."""

    # Timeout for thread stop operation (seconds)
    STOP_TIMEOUT = 5.0

    def __init__(self, registry: ConnectionRegistry, session: GameSession):
        self.registry = registry
        self.session = session
        self.events: "queue.Queue[ServerEvent]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

        self._handlers: Dict[ServerEventType, Callable[[ServerEvent], None]] = {
            ServerEventType.CONNECTION_JOINED: self._handle_join,
            ServerEventType.CONNECTION_LEFT: self._handle_leave,
            ServerEventType.BROADCAST: self._handle_broadcast,
            ServerEventType.RESTART_REQUESTED: self._handle_restart,
        }

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # --- Producers (any thread) ---

    def submit(self, event: ServerEvent) -> None:
        self.events.put(event)

    def submit_join(self, connection: Connection) -> None:
        self.submit(ServerEvent(type=ServerEventType.CONNECTION_JOINED, connection=connection))

    def submit_leave(self, connection_id: str, pruned: bool = False) -> None:
        self.submit(ServerEvent(
            type=ServerEventType.CONNECTION_LEFT,
            connection_id=connection_id,
            data={"pruned": pruned}
        ))

    def submit_pruned(self, connection: Connection) -> None:
        """Registry prune listener: report a peer dropped on a failed write."""
        self.submit_leave(connection.id, pruned=True)

    def submit_broadcast(self, payload: str) -> None:
        self.submit(ServerEvent(type=ServerEventType.BROADCAST, payload=payload))

    def submit_restart(self) -> None:
        self.submit(ServerEvent(type=ServerEventType.RESTART_REQUESTED))

    # --- Thread lifecycle ---

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self.run, name="EventDispatcher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Queue a shutdown marker and wait for the loop to drain up to it."""
        if not self.is_running:
            return
        self.submit(ServerEvent(type=ServerEventType.SHUTDOWN))
        self._thread.join(timeout=self.STOP_TIMEOUT)
        self._thread = None

    def run(self) -> None:
        """Consume events until SHUTDOWN."""
        while True:
            event = self.events.get()
            if event.type is ServerEventType.SHUTDOWN:
                break
            try:
                self.process(event)
            except Exception:
                logger.exception("Failed to process %s", event.type.name)

    def process(self, event: ServerEvent) -> None:
        """Handle one event on the calling thread."""
        handler = self._handlers.get(event.type)
        if handler:
            handler(event)

    # --- Handlers (dispatcher thread only) ---

    def _handle_join(self, event: ServerEvent) -> None:
        connection = event.connection
        role = self.registry.join(connection)
        if role is None:
            return

        members = len(self.registry)
        logger.info("%s joined as %s (%d/%d)", connection.id, role.value,
                    members, self.registry.max_players)
        self.registry.broadcast(player_joined_notice(role))

        if members == 1:
            self.registry.broadcast(NOTICE_WAITING)
        elif members == self.registry.max_players:
            self._start_game()

    def _handle_leave(self, event: ServerEvent) -> None:
        removed = self.registry.leave(event.connection_id)
        if removed is None and not event.data.get("pruned"):
            return

        logger.info("%s disconnected", event.connection_id)
        self.session.stop()
        self.registry.broadcast(NOTICE_DISCONNECTED)
        if len(self.registry) == 1:
            self.registry.broadcast(NOTICE_WAITING)

    def _handle_broadcast(self, event: ServerEvent) -> None:
        if event.payload is not None:
            self.registry.broadcast(event.payload)

    def _handle_restart(self, event: ServerEvent) -> None:
        if len(self.registry) < self.registry.max_players:
            logger.info("Restart ignored: waiting for players")
            return
        self._start_game(restart=True)

    def _start_game(self, restart: bool = False) -> None:
        """Stop any running game, announce the seats and start a fresh one."""
        self.session.stop()
        self.registry.broadcast(NOTICE_START)

        for connection in self.registry.members():
            self.registry.send_to(
                connection.id,
                player_info_message(connection.role, connection.id).to_json()
            )

        player1 = self.registry.get_by_role(Role.PLAYER1)
        player2 = self.registry.get_by_role(Role.PLAYER2)
        if player1 is None or player2 is None:
            # A peer was pruned while being told its seat
            logger.info("Game not started: a player dropped during setup")
            return
        if restart:
            self.session.restart(player1.id, player2.id)
        else:
            self.session.start(player1.id, player2.id)
