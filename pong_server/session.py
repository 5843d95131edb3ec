"""Game session: the authoritative state and its fixed-rate tick loop.

Each start installs a new GameState together with a new CancellationToken
tagged with a monotonically increasing generation. The tick loop only touches
the state while its token is uncancelled and its generation is still the
current one, so a superseded loop can never mutate or broadcast a newer game.
"""

import logging
import random
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pong import physics
from pong.config_loader import GameConfig
from pong.state import Direction, GameState, Role
from pong_server.protocol import game_state_message

logger = logging.getLogger(__name__)

Broadcaster = Callable[[str], Any]


class SessionStatus(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


class CancellationToken:
    """One-shot, idempotent stop signal for a single session generation."""

    def __init__(self, generation: int):
        self.generation = generation
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Raise the signal. Raising it again is a no-op."""
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True means cancellation was raised."""
        return self._event.wait(timeout)


class GameSession:
    """Owns the live GameState and runs the simulation loop against it."""

    def __init__(
        self,
        config: GameConfig,
        broadcast: Broadcaster,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.broadcast = broadcast
        self._rng = rng or random.Random()
        self._clock = clock

        self._lock = threading.Lock()
        self._state: Optional[GameState] = None
        self._token: Optional[CancellationToken] = None
        self._generation = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            if self._token is None:
                return SessionStatus.IDLE
            if self._token.cancelled:
                return SessionStatus.STOPPED
            return SessionStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def loop_thread(self) -> Optional[threading.Thread]:
        return self._thread

    def start(self, player1_id: str, player2_id: str, run_loop: bool = True) -> CancellationToken:
        """Start (or restart) the game for the two given connections.

        Any running loop is cancelled before the new state is installed.
        With ``run_loop=False`` the state is installed but no thread is started,
        which lets callers drive ticks manually.
        """
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._generation += 1
            token = CancellationToken(self._generation)
            self._state = physics.new_game_state(player1_id, player2_id, self.config, self._rng)
            self._token = token

        logger.info("Session generation %d started (%s vs %s)",
                    token.generation, player1_id, player2_id)

        if run_loop:
            thread = threading.Thread(
                target=self._run,
                args=(token,),
                name=f"GameLoop-{token.generation}",
                daemon=True
            )
            self._thread = thread
            thread.start()
        return token

    def restart(self, player1_id: str, player2_id: str) -> CancellationToken:
        """Replace the current game wholesale with a fresh one.

        Score, ball and paddles are all reset; the previous generation's loop
        is cancelled before the new one runs.
        """
        logger.info("Restarting session after generation %d", self.generation)
        return self.start(player1_id, player2_id)

    def stop(self) -> None:
        """Cancel the running loop, if any. Safe to call repeatedly."""
        with self._lock:
            token = self._token
            if token is None or token.cancelled:
                return
            token.cancel()
        logger.info("Session generation %d stopped", token.generation)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Join the most recent loop thread. Returns True if it has exited."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def snapshot(self) -> Optional[Dict[str, Any]]:
        """Current state in wire layout, or None if no game was ever started."""
        with self._lock:
            if self._state is None:
                return None
            return self._state.to_dict()

    def apply_movement(self, connection_id: str, role: Optional[Role],
                       direction: Optional[Direction]) -> bool:
        """Move the paddle for ``role`` if ``connection_id`` owns it.

        Returns True if the paddle was moved. Commands are dropped silently
        when no session is active, the role or direction is unknown, or the
        sender is not the connection bound to that role.
        """
        if role is None or direction is None:
            return False
        with self._lock:
            if self._state is None or self._token is None or self._token.cancelled:
                return False
            paddle = self._state.paddle_for(role)
            if paddle.id != connection_id:
                logger.debug("Ignoring movement from %s for %s", connection_id, role.value)
                return False
            physics.move_paddle(paddle, direction, self.config)
            return True

    def tick(self, token: CancellationToken) -> Optional[Dict[str, Any]]:
        """Advance one simulation step for ``token``'s generation.

        Returns the resulting snapshot, or None when the token has been
        cancelled or superseded, in which case nothing is mutated.
        """
        with self._lock:
            if not self._is_current(token):
                return None
            physics.step(self._state, self.config, self._rng)
            return self._state.to_dict()

    def _is_current(self, token: CancellationToken) -> bool:
        return (
            not token.cancelled
            and token is self._token
            and token.generation == self._generation
            and self._state is not None
        )

    def _publish(self, token: CancellationToken, snapshot: Dict[str, Any]) -> bool:
        """Broadcast a GAME_STATE unless ``token`` was cancelled or superseded.

        The check and the hand-off share the session lock, so once ``stop`` or
        ``start`` returns no frame from an older generation can follow.
        """
        payload = game_state_message(snapshot).to_json()
        with self._lock:
            if not self._is_current(token):
                return False
            self.broadcast(payload)
            return True

    def _run(self, token: CancellationToken) -> None:
        interval = self.config.tick_interval
        next_tick = self._clock() + interval

        while not token.wait(max(0.0, next_tick - self._clock())):
            next_tick += interval
            if next_tick < self._clock():
                # Fell behind; drop the missed ticks instead of bursting
                next_tick = self._clock() + interval
            snapshot = self.tick(token)
            if snapshot is None or not self._publish(token, snapshot):
                break

        logger.debug("Game loop %d exited", token.generation)
