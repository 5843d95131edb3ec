"""Threaded HTTP server for the browser client's static files."""

import functools
import http.server
import logging
import threading
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class StaticFileHandler(http.server.SimpleHTTPRequestHandler):
    """Serves files from one directory, logging through the module logger."""

    def log_message(self, format, *args):
        logger.debug("[HTTP] %s - %s", self.client_address[0], format % args)

    def log_error(self, format, *args):
        logger.warning("[HTTP] %s - %s", self.client_address[0], format % args)


def start_static_server(
    directory: str,
    host: str = "0.0.0.0",
    port: int = 8000,
) -> Tuple[http.server.ThreadingHTTPServer, threading.Thread]:
    """Serve ``directory`` on a background thread.

    Returns the server (call ``shutdown()`` to stop it) and its thread.
    """
    handler = functools.partial(StaticFileHandler, directory=directory)
    httpd = http.server.ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=httpd.serve_forever, name="StaticHTTP", daemon=True)
    thread.start()
    logger.info("Serving %s on http://%s:%d", directory, host, httpd.server_address[1])
    return httpd, thread


def stop_static_server(httpd: Optional[http.server.ThreadingHTTPServer]) -> None:
    if httpd is None:
        return
    httpd.shutdown()
    httpd.server_close()
