"""Tests for pong_server/static.py - client file serving."""
import urllib.error
import urllib.request

import pytest

from pong_server.static import start_static_server, stop_static_server


@pytest.fixture
def static_server(tmp_path):
    (tmp_path / "index.html").write_text("<h1>pong</h1>")
    httpd, thread = start_static_server(str(tmp_path), host="127.0.0.1", port=0)
    yield httpd
    stop_static_server(httpd)
    thread.join(timeout=2.0)


def test_serves_files_from_directory(static_server):
    port = static_server.server_address[1]
    with urllib.request.urlopen(f"http://127.0.0.1:{port}/index.html", timeout=2) as resp:
        assert resp.status == 200
        assert resp.read() == b"<h1>pong</h1>"


def test_missing_file_is_404(static_server):
    port = static_server.server_address[1]
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        urllib.request.urlopen(f"http://127.0.0.1:{port}/missing.js", timeout=2)
    assert excinfo.value.code == 404


def test_stop_none_is_noop():
    stop_static_server(None)
