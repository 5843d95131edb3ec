"""
WebSocket server entry point for two-player pong.

This module provides:
- The GameServer object that owns the registry, dispatcher and session
- The /ws endpoint and the per-connection read loop
- Command-line startup
"""

import argparse
import http
import logging
import os
import socket
import sys
import threading
import uuid
from typing import Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import Server, ServerConnection, serve
from rich.logging import RichHandler

from pong.config_loader import GameConfig, load_config
from pong_server.dispatcher import EventDispatcher
from pong_server.protocol import ProtocolError, decode_client_message
from pong_server.registry import Connection, ConnectionRegistry
from pong_server.session import GameSession
from pong_server.static import start_static_server, stop_static_server

logger = logging.getLogger(__name__)


def connection_id_for(websocket: ServerConnection) -> str:
    """Derive a connection's identifier from its remote endpoint."""
    address = websocket.remote_address
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(uuid.uuid4())


class GameServer:
    """
    Two-player game server.

    Handles:
    - Accepting WebSocket connections on the configured path
    - Forwarding joins/leaves to the event dispatcher
    - Forwarding movement input to the game session
    """

    def __init__(self, config: Optional[GameConfig] = None, session: Optional[GameSession] = None):
        self.config = config or GameConfig()

        self.registry = ConnectionRegistry(max_players=self.config.max_players)
        self.session = session or GameSession(self.config, broadcast=self.registry.broadcast)
        self.dispatcher = EventDispatcher(self.registry, self.session)
        self.registry.set_prune_listener(self.dispatcher.submit_pruned)

        self._server: Optional[Server] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._httpd = None

    @property
    def port(self) -> Optional[int]:
        """Port the WebSocket endpoint is bound to, once started."""
        if self._server is None:
            return None
        return self._server.socket.getsockname()[1]

    def bind(self) -> Server:
        """Bind the listening socket. Raises OSError if the port is unavailable."""
        if self._server is None:
            self._server = serve(
                self.handle_connection,
                self.config.host,
                self.config.port,
                process_request=self.process_request,
            )
        return self._server

    def start(self) -> None:
        """Bind and serve on a background thread."""
        self.dispatcher.start()
        server = self.bind()
        self._serve_thread = threading.Thread(
            target=server.serve_forever, name="WebSocketServer", daemon=True
        )
        self._serve_thread.start()
        logger.info("WebSocket server running on ws://%s:%d%s",
                    self.config.host, self.port, self.config.path)

    def serve_forever(self) -> None:
        """Bind and serve on the calling thread until shutdown."""
        self.dispatcher.start()
        server = self.bind()
        logger.info("WebSocket server running on ws://%s:%d%s",
                    self.config.host, self.port, self.config.path)
        server.serve_forever()

    def start_static(self, directory: str, port: int) -> bool:
        """Serve the client files from ``directory`` if it exists."""
        if not os.path.isdir(directory):
            logger.info("Static directory %s not found; not serving client files", directory)
            return False
        self._httpd, _ = start_static_server(directory, self.config.host, port)
        return True

    def shutdown(self) -> None:
        """Stop serving, end the game loop and drain the dispatcher."""
        if self._server is not None:
            self._server.shutdown()
        if self._serve_thread is not None:
            self._serve_thread.join(timeout=5.0)
            self._serve_thread = None
        self.session.stop()
        self.session.wait_stopped(timeout=1.0)
        for connection in self.registry.members():
            connection.close()
        self.dispatcher.stop()
        stop_static_server(self._httpd)
        self._httpd = None

    def restart_game(self) -> None:
        """Request a fresh game for the current two players."""
        self.dispatcher.submit_restart()

    def process_request(self, websocket: ServerConnection, request):
        """Only upgrade requests for the configured path."""
        path = request.path.split("?", 1)[0]
        if path != self.config.path:
            return websocket.respond(http.HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    def handle_connection(self, websocket: ServerConnection) -> None:
        """Run one connection: join, read until closed or invalid, leave."""
        connection = Connection(id=connection_id_for(websocket), websocket=websocket)
        connection.start_writer()
        logger.info("New connection: %s", connection.id)
        self.dispatcher.submit_join(connection)

        try:
            for raw_message in websocket:
                self.handle_message(connection, raw_message)
        except ConnectionClosed:
            logger.info("Connection closed: %s", connection.id)
        except ProtocolError as e:
            logger.debug("Dropping %s after unreadable message: %s", connection.id, e)
        finally:
            self.dispatcher.submit_leave(connection.id)

    def handle_message(self, connection: Connection, raw_message) -> None:
        """Handle one inbound frame. Raises ProtocolError for unreadable frames."""
        command = decode_client_message(raw_message)
        if command is None:
            return
        self.session.apply_movement(command.player_id, command.role, command.direction)


def check_port_available(host: str, port: int) -> bool:
    """Check if a port is available for binding.

    Returns True if available, False if in use by another process.
    Uses SO_REUSEADDR to allow binding to ports in TIME_WAIT state.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host if host != "0.0.0.0" else "127.0.0.1", port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


def configure_logging(level: str = "INFO") -> None:
    """Send log records to a rich console handler."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    # Failed handshakes and half-open sockets are noisy at INFO
    logging.getLogger("websockets").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Two-player pong WebSocket server")
    parser.add_argument("--config", default=None, help="Path to game_settings.json")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="WebSocket port to bind to")
    parser.add_argument("--static-dir", default=None, help="Directory with the browser client")
    parser.add_argument("--http-port", type=int, default=None, help="Port for the static file server")
    parser.add_argument("--no-static", action="store_true", help="Do not serve client files")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...)")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    config = load_config(args.config).with_overrides(
        host=args.host,
        port=args.port,
        static_dir=args.static_dir,
        http_port=args.http_port,
    )

    if not check_port_available(config.host, config.port):
        print(f"ERROR: Port {config.port} is already in use by another application.")
        print("Try a different port:")
        print(f"  --port {config.port + 1}")
        return 1

    server = GameServer(config)
    try:
        server.bind()
    except OSError as e:
        print(f"ERROR: Could not listen on {config.host}:{config.port}: {e}")
        return 1

    if not args.no_static:
        try:
            server.start_static(config.static_dir, config.http_port)
        except OSError as e:
            logger.warning("Static file server disabled: %s", e)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopped.")
    finally:
        server.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
