"""Shared test fixtures for the pong server tests."""
import json
import random
from typing import List
from unittest.mock import MagicMock

import pytest

from pong.config_loader import GameConfig
from pong.physics import new_game_state
from pong_server.registry import Connection


@pytest.fixture(autouse=True)
def deterministic_random():
    """Seed random for reproducible tests."""
    random.seed(42)
    yield
    random.seed()


@pytest.fixture
def config():
    """Default protocol constants."""
    return GameConfig()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def game_state(config, rng):
    """A fresh game between connections 'A' and 'B'."""
    return new_game_state("A", "B", config, rng)


class FakeWebSocket:
    """Records sent frames; can be told to fail on send."""

    def __init__(self, fail: bool = False):
        self.sent: List[str] = []
        self.closed = False
        self.fail = fail
        self.close_calls = 0

    def send(self, payload):
        if self.fail or self.closed:
            raise OSError("broken pipe")
        self.sent.append(payload)

    def close(self):
        self.close_calls += 1
        self.closed = True

    def json_messages(self):
        """Sent frames that are JSON objects."""
        result = []
        for frame in self.sent:
            try:
                obj = json.loads(frame)
            except ValueError:
                continue
            if isinstance(obj, dict):
                result.append(obj)
        return result

    def text_notices(self):
        """Sent frames that are plain-text notices."""
        return [frame for frame in self.sent if not frame.startswith("{")]


@pytest.fixture
def make_connection():
    """Factory fixture for connections backed by FakeWebSocket."""
    def _make(connection_id: str, fail: bool = False) -> Connection:
        return Connection(id=connection_id, websocket=FakeWebSocket(fail=fail))
    return _make


@pytest.fixture
def broadcast_collector():
    """A MagicMock standing in for a broadcast callable."""
    return MagicMock()
