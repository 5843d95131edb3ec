"""Shared fixtures and utilities for integration tests."""

import json
import time
from typing import Callable, List, Optional

import pytest
from websockets.sync.client import ClientConnection, connect

from pong.config_loader import GameConfig
from pong_server.main import GameServer


RECV_TIMEOUT = 3.0


@pytest.fixture
def game_server():
    """A real server on an ephemeral port, shut down after the test."""
    server = GameServer(GameConfig(host="127.0.0.1", port=0))
    server.start()
    yield server
    server.shutdown()


@pytest.fixture
def connect_client(game_server):
    """Factory fixture opening client connections that are closed on teardown."""
    clients: List[ClientConnection] = []

    def _connect(path: str = "/ws") -> ClientConnection:
        ws = connect(f"ws://127.0.0.1:{game_server.port}{path}", open_timeout=5)
        clients.append(ws)
        return ws

    yield _connect

    for ws in clients:
        ws.close()


def as_json(frame) -> Optional[dict]:
    """Decode a JSON object frame; None for plain-text notices."""
    try:
        obj = json.loads(frame)
    except (TypeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def recv_until(ws: ClientConnection, predicate: Callable[[str], bool],
               timeout: float = RECV_TIMEOUT) -> str:
    """Receive frames until one satisfies ``predicate``; fail on timeout."""
    deadline = time.time() + timeout
    seen: List[str] = []
    while True:
        remaining = deadline - time.time()
        if remaining <= 0:
            raise AssertionError(f"Expected frame not received; last frames: {seen[-5:]}")
        try:
            frame = ws.recv(timeout=remaining)
        except TimeoutError:
            raise AssertionError(f"Expected frame not received; last frames: {seen[-5:]}")
        seen.append(frame)
        if predicate(frame):
            return frame


def recv_json(ws: ClientConnection, msg_type: str, timeout: float = RECV_TIMEOUT) -> dict:
    """Receive until a JSON message of ``msg_type`` arrives."""
    frame = recv_until(
        ws, lambda f: (as_json(f) or {}).get("type") == msg_type, timeout
    )
    return as_json(frame)


def recv_text(ws: ClientConnection, text: str, timeout: float = RECV_TIMEOUT) -> str:
    """Receive until the plain-text notice ``text`` arrives."""
    return recv_until(ws, lambda f: f == text, timeout)


def wait_for(condition: Callable[[], bool], timeout: float = RECV_TIMEOUT) -> bool:
    """Poll ``condition`` until true or timeout."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()
