"""Connection registry: who is connected and which seat they hold.

The registry is guarded by one lock that is held only while membership is
read or changed. Network writes always happen on a snapshot, outside the lock,
so one slow peer cannot hold up membership changes.

Connections serving real sockets get an outbound queue drained by their own
writer thread. Delivery then only enqueues: a peer that stops reading fills
its queue and is pruned, and no caller ever waits on its socket.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pong.state import Role

logger = logging.getLogger(__name__)

PruneListener = Callable[["Connection"], None]

# Frames a peer may fall behind by (about one second of ticks at 60 Hz)
OUTBOX_SIZE = 64

_CLOSE = object()


@dataclass(eq=False)
class Connection:
    """A live client connection.

    Without a writer thread (see ``start_writer``) frames are written inline on
    the caller's thread.
    """

    id: str
    websocket: Any
    role: Optional[Role] = None
    on_write_error: Optional[Callable[["Connection"], None]] = field(default=None, repr=False)
    _outbox: Optional[queue.Queue] = field(default=None, init=False, repr=False)
    _writer: Optional[threading.Thread] = field(default=None, init=False, repr=False)
    _closed: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def writer_thread(self) -> Optional[threading.Thread]:
        return self._writer

    def start_writer(self, maxsize: int = OUTBOX_SIZE) -> None:
        """Move socket writes onto a dedicated thread with a bounded queue."""
        if self._writer is not None:
            return
        self._outbox = queue.Queue(maxsize=maxsize)
        self._writer = threading.Thread(
            target=self._write_loop,
            name=f"Writer-{self.id}",
            daemon=True
        )
        self._writer.start()

    def send(self, payload: str) -> None:
        """Send or enqueue one frame.

        Raises:
            queue.Full: if the peer has fallen ``maxsize`` frames behind.
            ConnectionError: if the connection was already closed.
        """
        if self._outbox is None:
            self.websocket.send(payload)
            return
        if self._closed.is_set():
            raise ConnectionError("connection closed")
        self._outbox.put_nowait(payload)

    def close(self) -> None:
        """Close the connection; closing twice is harmless.

        With a writer thread, frames already queued are written first and the
        writer closes the socket. A stalled peer's backlog is discarded.
        """
        if self._outbox is None:
            self._closed.set()
            self._close_socket()
            return
        if self._closed.is_set():
            return
        self._closed.set()
        while True:
            try:
                self._outbox.put_nowait(_CLOSE)
                return
            except queue.Full:
                try:
                    self._outbox.get_nowait()
                except queue.Empty:
                    pass

    def _write_loop(self) -> None:
        while True:
            payload = self._outbox.get()
            if payload is _CLOSE:
                break
            try:
                self.websocket.send(payload)
            except Exception as e:
                logger.warning("Write to %s failed (%s); dropping peer", self.id, e)
                self._closed.set()
                if self.on_write_error is not None:
                    self.on_write_error(self)
                break
        self._close_socket()
        logger.debug("Writer for %s exited", self.id)

    def _close_socket(self) -> None:
        try:
            self.websocket.close()
        except Exception as e:
            logger.debug("Error closing %s: %s", self.id, e)


class ConnectionRegistry:
    """Tracks active player connections and enforces the player limit."""

    def __init__(self, max_players: int = 2, on_prune: Optional[PruneListener] = None):
        self.max_players = max_players
        self._members: Dict[str, Connection] = {}
        self._lock = threading.Lock()
        self._on_prune = on_prune

    def set_prune_listener(self, listener: Optional[PruneListener]) -> None:
        """Set callback invoked after a peer is dropped for a failed write."""
        self._on_prune = listener

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __contains__(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._members

    def members(self) -> List[Connection]:
        """Snapshot of current members."""
        with self._lock:
            return list(self._members.values())

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._members.get(connection_id)

    def get_by_role(self, role: Role) -> Optional[Connection]:
        with self._lock:
            for conn in self._members.values():
                if conn.role is role:
                    return conn
        return None

    def join(self, connection: Connection) -> Optional[Role]:
        """Admit a connection and assign it a role.

        The first free seat is taken, player1 before player2. When the registry
        is full the connection is closed and None is returned; membership is
        not touched.
        """
        with self._lock:
            if len(self._members) >= self.max_players:
                role = None
            else:
                taken = {c.role for c in self._members.values()}
                role = Role.PLAYER1 if Role.PLAYER1 not in taken else Role.PLAYER2
                connection.role = role
                connection.on_write_error = self._prune
                self._members[connection.id] = connection

        if role is None:
            logger.info("Rejecting %s: server full (%d players)", connection.id, self.max_players)
            connection.close()
        return role

    def leave(self, connection_id: str) -> Optional[Connection]:
        """Remove a member and close its socket.

        Returns the removed connection, or None if it was not a member.
        """
        with self._lock:
            connection = self._members.pop(connection_id, None)
        if connection is not None:
            connection.close()
        return connection

    def send_to(self, connection_id: str, payload: str) -> bool:
        """Send to a single member. Returns False if it is absent or was pruned."""
        connection = self.get(connection_id)
        if connection is None:
            return False
        return self._deliver(connection, payload)

    def broadcast(self, payload: str) -> int:
        """Send to every current member; returns how many frames were accepted.

        A failed write prunes that member and delivery continues to the rest.
        """
        delivered = 0
        for connection in self.members():
            if self._deliver(connection, payload):
                delivered += 1
        return delivered

    def _deliver(self, connection: Connection, payload: str) -> bool:
        try:
            connection.send(payload)
            return True
        except queue.Full:
            logger.warning("%s stopped reading (outbox full); dropping peer", connection.id)
            self._prune(connection)
            return False
        except Exception as e:
            logger.warning("Write to %s failed (%s); dropping peer", connection.id, e)
            self._prune(connection)
            return False

    def _prune(self, connection: Connection) -> None:
        with self._lock:
            # Only remove the exact object that failed, not a newer occupant of the id
            if self._members.get(connection.id) is not connection:
                removed = False
            else:
                del self._members[connection.id]
                removed = True
        connection.close()
        if removed and self._on_prune is not None:
            self._on_prune(connection)
