"""Physics for the ball-and-paddle world.

All functions mutate the GameState they are given and nothing else. The only
source of randomness is the direction draw when the ball respawns, which comes
from the ``rng`` argument so tests can seed it.
"""

import random
from typing import Optional

from pong.config_loader import GameConfig
from pong.state import Ball, Direction, GameState, Paddle, Role

_SIGNS = (-1, 1)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def new_ball(config: GameConfig, rng: Optional[random.Random] = None) -> Ball:
    """Create a ball at the field centre with a random diagonal direction."""
    rng = rng or random
    return Ball(
        x=config.field_width // 2,
        y=config.field_height // 2,
        speed=config.ball_base_speed,
        dx=rng.choice(_SIGNS),
        dy=rng.choice(_SIGNS),
    )


def new_paddle(role: Role, connection_id: str, config: GameConfig) -> Paddle:
    """Create a paddle flush against its side of the field, vertically centred."""
    x = 0 if role is Role.PLAYER1 else config.field_width - config.paddle_width
    return Paddle(
        x=x,
        y=config.max_paddle_y // 2,
        role=role,
        width=config.paddle_width,
        height=config.paddle_height,
        id=connection_id,
    )


def new_game_state(player1_id: str, player2_id: str, config: GameConfig,
                   rng: Optional[random.Random] = None) -> GameState:
    """Fresh state for a new session: centred ball, start paddles, zero score."""
    return GameState(
        ball=new_ball(config, rng),
        paddle1=new_paddle(Role.PLAYER1, player1_id, config),
        paddle2=new_paddle(Role.PLAYER2, player2_id, config),
    )


def advance_ball(ball: Ball) -> None:
    """Move the ball one tick along each axis."""
    ball.x += ball.dx * ball.speed
    ball.y += ball.dy * ball.speed


def wall_collision(state: GameState, config: GameConfig,
                   rng: Optional[random.Random] = None) -> Optional[Role]:
    """Bounce off the top/bottom walls, then check the goals.

    Returns the role that scored, or None. At most one goal fires per call
    because the ball is respawned at the centre as soon as one is scored.
    """
    ball = state.ball
    radius = config.ball_radius

    if ball.y <= radius:
        ball.y = radius
        ball.dy = -ball.dy
    elif ball.y >= config.field_height - radius:
        ball.y = config.field_height - radius
        ball.dy = -ball.dy

    scorer = None
    if ball.x <= radius:
        scorer = Role.PLAYER2
    elif ball.x >= config.field_width - radius:
        scorer = Role.PLAYER1

    if scorer is not None:
        state.score.award(scorer)
        state.ball = new_ball(config, rng)
    return scorer


def _overlaps_vertically(ball: Ball, paddle: Paddle, radius: int) -> bool:
    return ball.y + radius >= paddle.y and ball.y - radius <= paddle.y + paddle.height


def paddle_collision(state: GameState, config: GameConfig) -> Optional[Role]:
    """Reflect the ball off the paddle it is travelling towards.

    A hit snaps the ball to the paddle's outer edge, reverses dx and raises
    the speed by one step. Returns the role whose paddle was hit, or None.
    """
    ball = state.ball
    radius = config.ball_radius
    left, right = state.paddle1, state.paddle2

    if ball.dx < 0:
        edge = left.x + left.width + radius
        if ball.x <= edge and _overlaps_vertically(ball, left, radius):
            ball.x = edge
            ball.dx = 1
            ball.speed += config.ball_speed_step
            return Role.PLAYER1
    elif ball.dx > 0:
        edge = right.x - radius
        if ball.x >= edge and _overlaps_vertically(ball, right, radius):
            ball.x = edge
            ball.dx = -1
            ball.speed += config.ball_speed_step
            return Role.PLAYER2
    return None


def step(state: GameState, config: GameConfig,
         rng: Optional[random.Random] = None) -> None:
    """Run one simulation tick in the fixed order: move, walls/goals, paddles."""
    advance_ball(state.ball)
    wall_collision(state, config, rng)
    paddle_collision(state, config)


def move_paddle(paddle: Paddle, direction: Direction, config: GameConfig) -> None:
    """Shift a paddle one step up or down, keeping it inside the field."""
    delta = -config.paddle_step if direction is Direction.UP else config.paddle_step
    paddle.y = clamp(paddle.y + delta, 0, config.max_paddle_y)
