"""Reload socket, health check and the end-to-end reload path"""
import time

import pytest
from fastapi.testclient import TestClient

from liveserver.main import create_app


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_client_receives_reload(client, app):
    broadcaster = app.state.broadcaster
    with client.websocket_connect("/ws") as ws:
        assert wait_for(lambda: len(broadcaster) == 1)
        assert client.portal.call(broadcaster.broadcast_reload) == 1
        assert ws.receive_text() == "reload"


def test_disconnect_unregisters(client, app):
    broadcaster = app.state.broadcaster
    with client.websocket_connect("/ws"):
        assert wait_for(lambda: len(broadcaster) == 1)
    assert wait_for(lambda: len(broadcaster) == 0)


def test_only_remaining_client_is_notified(client, app):
    broadcaster = app.state.broadcaster
    with client.websocket_connect("/ws") as staying:
        with client.websocket_connect("/ws"):
            assert wait_for(lambda: len(broadcaster) == 2)
        assert wait_for(lambda: len(broadcaster) == 1)

        assert client.portal.call(broadcaster.broadcast_reload) == 1
        assert staying.receive_text() == "reload"


def test_client_messages_are_ignored(client, app):
    broadcaster = app.state.broadcaster
    with client.websocket_connect("/ws") as ws:
        ws.send_text("hello")
        ws.send_text("anything")
        assert wait_for(lambda: len(broadcaster) == 1)
        client.portal.call(broadcaster.broadcast_reload)
        assert ws.receive_text() == "reload"


def test_health(client, settings):
    r = client.get("/__livereload/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["entry"] == "index.html"
    assert data["root"] == str(settings.root)
    assert data["clients"] == 0
    assert data["watching"] is False


@pytest.fixture
def live_client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c, app


def test_file_write_triggers_one_reload(live_client, site):
    client, app = live_client
    broadcaster = app.state.broadcaster
    dispatcher = app.state.dispatcher

    assert client.get("/__livereload/health").json()["watching"] is True

    with client.websocket_connect("/ws") as ws:
        assert wait_for(lambda: len(broadcaster) == 1)
        time.sleep(0.1)

        (site / "index.html").write_bytes(b"<html><body>edited</body></html>")

        assert wait_for(lambda: dispatcher.reloads >= 1)
        assert ws.receive_text() == "reload"

        # Burst settled; the single write produced a single reload
        time.sleep(0.5)
        assert dispatcher.reloads == 1

    assert b"edited" in client.get("/").content


def test_shutdown_stops_watcher(settings):
    app = create_app(settings)
    with TestClient(app):
        assert app.state.watcher.is_running
    assert not app.state.watcher.is_running


def test_binary_frames_are_ignored(client, app):
    broadcaster = app.state.broadcaster
    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b"ping")
        ws.send_text("pong")
        assert wait_for(lambda: len(broadcaster) == 1)
        time.sleep(0.1)
        assert len(broadcaster) == 1
        assert client.portal.call(broadcaster.broadcast_reload) == 1
        assert ws.receive_text() == "reload"
