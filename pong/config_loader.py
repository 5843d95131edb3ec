"""Configuration loader for the shared game constants.

The values in ``config/game_settings.json`` form the wire contract between the
server and any client: both sides must agree on field, paddle, ball and tick
settings or their simulations drift apart.
"""
import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_DIR = "config"
CONFIG_FILE = "game_settings.json"

CONFIG_VERSION = 1


@dataclass(frozen=True)
class GameConfig:
    """Protocol constants plus server settings."""

    version: int = CONFIG_VERSION

    # Field
    field_width: int = 500
    field_height: int = 500

    # Paddles
    paddle_width: int = 25
    paddle_height: int = 100
    paddle_step: int = 50

    # Ball
    ball_radius: int = 12
    ball_base_speed: int = 1
    ball_speed_step: int = 1

    # Session
    tick_rate: int = 60
    max_players: int = 2

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/ws"
    static_dir: str = "dist"
    http_port: int = 8000

    @property
    def tick_interval(self) -> float:
        return 1.0 / self.tick_rate

    @property
    def max_paddle_y(self) -> int:
        return self.field_height - self.paddle_height

    def with_overrides(self, **overrides: Any) -> "GameConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


# (section, key) in the JSON document -> GameConfig field
_FIELD_MAP = {
    ("field", "width"): "field_width",
    ("field", "height"): "field_height",
    ("paddle", "width"): "paddle_width",
    ("paddle", "height"): "paddle_height",
    ("paddle", "step"): "paddle_step",
    ("ball", "radius"): "ball_radius",
    ("ball", "base_speed"): "ball_base_speed",
    ("ball", "speed_step"): "ball_speed_step",
    ("session", "tick_rate"): "tick_rate",
    ("session", "max_players"): "max_players",
    ("server", "host"): "host",
    ("server", "port"): "port",
    ("server", "path"): "path",
    ("server", "static_dir"): "static_dir",
    ("server", "http_port"): "http_port",
}


def _load_json(filepath: str) -> Dict[str, Any]:
    """Load a JSON configuration file, returning {} when unusable."""
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Config file %s not found. Using defaults.", filepath)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Error parsing %s: %s. Using defaults.", filepath, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Config file %s is not a JSON object. Using defaults.", filepath)
        return {}
    return data


def get_nested(data: Dict[str, Any], *keys, default=None):
    """Get a nested configuration value."""
    value = data
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def config_from_dict(data: Dict[str, Any]) -> GameConfig:
    """Build a GameConfig from a settings document, defaulting missing keys."""
    values: Dict[str, Any] = {}
    version = data.get("version")
    if version is not None:
        values["version"] = int(version)

    defaults = GameConfig()
    for (section, key), attr in _FIELD_MAP.items():
        raw = get_nested(data, section, key)
        if raw is None:
            continue
        expected = type(getattr(defaults, attr))
        try:
            values[attr] = expected(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid value for %s.%s: %r. Using default.", section, key, raw)

    config = GameConfig(**values)
    if config.version != CONFIG_VERSION:
        logger.warning(
            "Config version %s differs from supported version %s",
            config.version, CONFIG_VERSION,
        )
    return config


def load_config(path: Optional[str] = None) -> GameConfig:
    """Load the game configuration from ``path`` (default: config/game_settings.json)."""
    filepath = path or os.path.join(CONFIG_DIR, CONFIG_FILE)
    return config_from_dict(_load_json(filepath))
