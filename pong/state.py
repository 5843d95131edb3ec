"""Authoritative game state: ball, paddles and score."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class Role(Enum):
    """Seat a connection occupies in the game."""
    PLAYER1 = "player1"
    PLAYER2 = "player2"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Return the matching role, or None for anything unrecognised."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def opponent(self) -> "Role":
        return Role.PLAYER2 if self is Role.PLAYER1 else Role.PLAYER1


class Direction(Enum):
    """Paddle movement commands."""
    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: Any) -> Optional["Direction"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Ball:
    """Ball position, speed and direction signs (dx, dy are always -1 or 1)."""

    x: int
    y: int
    speed: int
    dx: int
    dy: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Paddle:
    """A paddle bound to the connection occupying its role."""

    x: int
    y: int
    role: Role
    width: int
    height: int
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "y": self.y,
            "x": self.x,
            "role": self.role.value,
            "width": self.width,
            "height": self.height,
            "id": self.id,
        }


@dataclass
class Score:
    player1: int = 0
    player2: int = 0

    def award(self, role: Role) -> None:
        """Add one point to the given role."""
        if role is Role.PLAYER1:
            self.player1 += 1
        else:
            self.player2 += 1

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class GameState:
    """Aggregate of the live simulation, owned by one GameSession."""

    ball: Ball
    paddle1: Paddle
    paddle2: Paddle
    score: Score = field(default_factory=Score)

    def paddle_for(self, role: Role) -> Paddle:
        return self.paddle1 if role is Role.PLAYER1 else self.paddle2

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot in the GAME_STATE wire layout (without the type tag)."""
        return {
            "ball": self.ball.to_dict(),
            "paddle1": self.paddle1.to_dict(),
            "paddle2": self.paddle2.to_dict(),
            "score": self.score.to_dict(),
        }
