"""Unit tests for the WebSocketRegistry event bus and the settings watcher.

Tests cover connect/disconnect, topic-based broadcasting, wildcard
subscriptions, dead client cleanup, and watcher broadcasts.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from claudefig.api.watchers import check_open_editors
from claudefig.api.websocket import WebSocketRegistry, parse_topics
from claudefig.config import FigConfig
from claudefig.context import AppContext


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.new_event_loop().run_until_complete(coro)


def _mock_ws():
    """Create a mock WebSocket with async send_text."""
    ws = MagicMock()
    ws.send_text = AsyncMock()
    return ws


def test_connect_disconnect():
    r = WebSocketRegistry()
    ws1 = _mock_ws()
    ws2 = _mock_ws()

    _run(r.connect(ws1))
    _run(r.connect(ws2, topics=["toast"]))
    assert r.client_count == 2

    r.disconnect(ws1)
    assert r.client_count == 1
    r.disconnect(ws2)
    assert r.client_count == 0


def test_broadcast_to_subscribed_topic():
    r = WebSocketRegistry()
    ws_toast = _mock_ws()
    ws_settings = _mock_ws()
    _run(r.connect(ws_toast, topics=["toast"]))
    _run(r.connect(ws_settings, topics=["settings_changed"]))

    delivered = _run(r.broadcast("toast", payload={"title": "hi"}))

    assert delivered == 1
    ws_toast.send_text.assert_called_once()
    ws_settings.send_text.assert_not_called()
    msg = json.loads(ws_toast.send_text.call_args[0][0])
    assert msg["type"] == "toast"
    assert msg["payload"] == {"title": "hi"}
    assert msg["source"] == "server"
    assert isinstance(msg["timestamp"], int)


def test_wildcard_receives_everything():
    r = WebSocketRegistry()
    ws = _mock_ws()
    _run(r.connect(ws))
    _run(r.broadcast("toast"))
    _run(r.broadcast("settings_changed"))
    assert ws.send_text.call_count == 2
    assert r.subscribers("anything") == 1


def test_dead_client_pruned():
    r = WebSocketRegistry()
    dead = _mock_ws()
    dead.send_text.side_effect = RuntimeError("closed")
    alive = _mock_ws()
    _run(r.connect(dead))
    _run(r.connect(alive))

    _run(r.broadcast("toast"))

    assert r.client_count == 1
    alive.send_text.assert_called_once()


def test_broadcast_with_no_clients():
    assert _run(WebSocketRegistry().broadcast("toast")) == 0


def test_parse_topics():
    assert parse_topics(None) == ["*"]
    assert parse_topics(" , ") == ["*"]
    assert parse_topics("toast,settings_changed") == ["toast", "settings_changed"]


def test_watcher_broadcasts_settings_changed(home_dir, global_settings):
    global_settings({"env": {"A": "1"}})
    ctx = AppContext.create(FigConfig(home_dir=home_dir))
    ws = _mock_ws()
    _run(ctx.ws_registry.connect(ws, topics=["settings_changed"]))
    editor = _run(ctx.editors.open("global"))

    assert _run(check_open_editors(ctx)) == 0
    global_settings({"env": {"A": "2"}})
    assert _run(check_open_editors(ctx)) == 1

    msg = json.loads(ws.send_text.call_args[0][0])
    assert msg["type"] == "settings_changed"
    assert msg["payload"]["editor_id"] == editor.id
    assert msg["payload"]["conflict"] == "clean"
    assert msg["source"] == "settings_watcher"


def test_watcher_survives_broken_file(home_dir, global_settings):
    global_settings({})
    ctx = AppContext.create(FigConfig(home_dir=home_dir))
    editor = _run(ctx.editors.open("global"))
    global_settings("{broken")

    assert _run(check_open_editors(ctx)) == 1
    assert editor.load_error is not None
