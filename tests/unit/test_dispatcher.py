"""Tests for pong_server/dispatcher.py - sequential membership control."""
import json
import time
from unittest.mock import MagicMock

import pytest

from pong.state import Role
from pong_server.dispatcher import EventDispatcher
from pong_server.events import ServerEvent, ServerEventType
from pong_server.registry import ConnectionRegistry
from pong_server.session import GameSession


@pytest.fixture
def registry():
    return ConnectionRegistry(max_players=2)


@pytest.fixture
def session():
    return MagicMock(spec=GameSession)


@pytest.fixture
def dispatcher(registry, session):
    d = EventDispatcher(registry, session)
    registry.set_prune_listener(d.submit_pruned)
    return d


def join(dispatcher, connection):
    dispatcher.process(ServerEvent(type=ServerEventType.CONNECTION_JOINED, connection=connection))


def leave(dispatcher, connection_id, pruned=False):
    dispatcher.process(ServerEvent(
        type=ServerEventType.CONNECTION_LEFT, connection_id=connection_id, data={"pruned": pruned}
    ))


class TestJoinHandling:

    def test_first_join_waits_for_opponent(self, dispatcher, make_connection, session):
        a = make_connection("A")
        join(dispatcher, a)

        assert a.websocket.sent == ["new player joined: player1", "waiting for opponent"]
        session.start.assert_not_called()

    def test_second_join_starts_game(self, dispatcher, make_connection, session):
        a, b = make_connection("A"), make_connection("B")
        join(dispatcher, a)
        join(dispatcher, b)

        session.start.assert_called_once_with("A", "B")
        assert "new player joined: player2" in a.websocket.sent
        assert "start game" in b.websocket.sent

    def test_each_player_gets_own_info(self, dispatcher, make_connection):
        a, b = make_connection("A"), make_connection("B")
        join(dispatcher, a)
        join(dispatcher, b)

        assert a.websocket.json_messages() == [{"type": "PLAYER_INFO", "role": "player1", "id": "A"}]
        assert b.websocket.json_messages() == [{"type": "PLAYER_INFO", "role": "player2", "id": "B"}]

    def test_start_notice_precedes_player_info(self, dispatcher, make_connection):
        a, b = make_connection("A"), make_connection("B")
        join(dispatcher, a)
        join(dispatcher, b)

        frames = b.websocket.sent
        assert frames.index("start game") < frames.index(json.dumps(
            {"type": "PLAYER_INFO", "role": "player2", "id": "B"}
        ))

    def test_third_join_rejected_without_notice(self, dispatcher, make_connection, session, registry):
        a, b, c = make_connection("A"), make_connection("B"), make_connection("C")
        join(dispatcher, a)
        join(dispatcher, b)
        sent_before = list(a.websocket.sent)

        join(dispatcher, c)

        assert c.websocket.closed
        assert c.websocket.sent == []
        assert len(registry) == 2
        assert a.websocket.sent == sent_before
        session.start.assert_called_once()


class TestLeaveHandling:

    def test_leave_stops_session_and_notifies(self, dispatcher, make_connection, session):
        a, b = make_connection("A"), make_connection("B")
        join(dispatcher, a)
        join(dispatcher, b)

        leave(dispatcher, "A")

        session.stop.assert_called()
        assert b.websocket.sent[-2:] == ["player disconnected", "waiting for opponent"]

    def test_leave_of_unknown_connection_is_silent(self, dispatcher, make_connection, session):
        a = make_connection("A")
        join(dispatcher, a)
        sent_before = list(a.websocket.sent)

        leave(dispatcher, "C")

        assert a.websocket.sent == sent_before
        session.stop.assert_not_called()

    def test_pruned_peer_reported_once(self, dispatcher, make_connection, registry, session):
        a, b = make_connection("A"), make_connection("B")
        join(dispatcher, a)
        join(dispatcher, b)
        a.websocket.fail = True

        registry.broadcast("tick")
        event = dispatcher.events.get_nowait()
        assert event.type is ServerEventType.CONNECTION_LEFT
        assert event.data["pruned"] is True

        dispatcher.process(event)
        assert b.websocket.sent.count("player disconnected") == 1

        # The reader thread of the dead peer reports its own leave later
        leave(dispatcher, "A")
        assert b.websocket.sent.count("player disconnected") == 1

    def test_rejoin_after_leave_starts_new_game(self, dispatcher, make_connection, session):
        a, b, c = make_connection("A"), make_connection("B"), make_connection("C")
        join(dispatcher, a)
        join(dispatcher, b)
        leave(dispatcher, "A")

        join(dispatcher, c)

        assert c.role is Role.PLAYER1
        session.start.assert_called_with("C", "B")


class TestRestartAndBroadcast:

    def test_restart_with_two_players(self, dispatcher, make_connection, session):
        join(dispatcher, make_connection("A"))
        join(dispatcher, make_connection("B"))

        dispatcher.process(ServerEvent(type=ServerEventType.RESTART_REQUESTED))

        session.start.assert_called_once_with("A", "B")
        session.restart.assert_called_once_with("A", "B")

    def test_restart_ignored_while_waiting(self, dispatcher, make_connection, session):
        join(dispatcher, make_connection("A"))
        dispatcher.process(ServerEvent(type=ServerEventType.RESTART_REQUESTED))
        session.start.assert_not_called()
        session.restart.assert_not_called()

    def test_broadcast_event(self, dispatcher, make_connection):
        a = make_connection("A")
        join(dispatcher, a)
        dispatcher.process(ServerEvent(type=ServerEventType.BROADCAST, payload="hello"))
        assert a.websocket.sent[-1] == "hello"


class TestThread:
    """The dispatcher thread applies queued events in order."""

    def test_queued_events_processed_in_order(self, dispatcher, make_connection, registry):
        a, b = make_connection("A"), make_connection("B")
        dispatcher.start()
        try:
            dispatcher.submit_join(a)
            dispatcher.submit_leave("A")
            dispatcher.submit_join(b)
        finally:
            dispatcher.stop()

        assert not dispatcher.is_running
        assert registry.members() == [b]
        assert b.role is Role.PLAYER1

    def test_handler_error_does_not_kill_loop(self, dispatcher, make_connection, registry):
        dispatcher.start()
        try:
            dispatcher.submit(ServerEvent(type=ServerEventType.CONNECTION_JOINED, connection=None))
            a = make_connection("A")
            dispatcher.submit_join(a)
            deadline = time.time() + 2.0
            while len(registry) == 0 and time.time() < deadline:
                time.sleep(0.01)
        finally:
            dispatcher.stop()

        assert a.role is Role.PLAYER1


class TestWithRealSession:

    def test_second_join_activates_session(self, registry, make_connection, config):
        session = GameSession(config, broadcast=registry.broadcast)
        dispatcher = EventDispatcher(registry, session)
        try:
            join(dispatcher, make_connection("A"))
            join(dispatcher, make_connection("B"))
            assert session.is_active
            assert session.snapshot()["paddle2"]["id"] == "B"
        finally:
            session.stop()
            session.wait_stopped(1.0)

    def test_restart_request_replaces_generation(self, registry, make_connection, config):
        session = GameSession(config, broadcast=registry.broadcast)
        dispatcher = EventDispatcher(registry, session)
        a = make_connection("A")
        try:
            join(dispatcher, a)
            join(dispatcher, make_connection("B"))
            dispatcher.process(ServerEvent(type=ServerEventType.RESTART_REQUESTED))

            assert session.generation == 2
            assert session.is_active
            assert a.websocket.sent.count("start game") == 2
        finally:
            session.stop()
            session.wait_stopped(1.0)
