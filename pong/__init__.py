"""Game-domain package: shared configuration, state and physics."""

from .config_loader import GameConfig, load_config
from .state import Ball, Direction, GameState, Paddle, Role, Score

__all__ = [
    "GameConfig",
    "load_config",
    "Ball",
    "Direction",
    "GameState",
    "Paddle",
    "Role",
    "Score",
]
