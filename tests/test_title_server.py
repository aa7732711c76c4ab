import asyncio
import concurrent.futures
import json

from core.command_handler import CommandHandler
from server import title_server


class FakeConnection:
    def __init__(self, *chunks):
        self.chunks = list(chunks)
        self.sent = b""
        self.closed = False

    def recv(self, size):
        return self.chunks.pop(0) if self.chunks else b""

    def sendall(self, data):
        self.sent += data

    def close(self):
        self.closed = True


def test_read_request_joins_chunks():
    conn = FakeConnection(b'{"type": ', b'"list_rules"}\n')
    assert title_server.read_request(conn) == '{"type": "list_rules"}'


def test_client_connection_gets_json_response(storage, make_rule):
    storage.save([make_rule("a", id="1")])
    conn = FakeConnection(b'{"type": "list_rules"}')

    title_server.handle_client_connection(conn, ("127.0.0.1", 5000), CommandHandler(storage))

    response = json.loads(conn.sent)
    assert response["ok"] is True
    assert response["rules"][0]["id"] == "1"
    assert conn.closed


def test_empty_request_is_rejected(storage):
    conn = FakeConnection()

    title_server.handle_client_connection(conn, ("127.0.0.1", 5000), CommandHandler(storage))

    assert json.loads(conn.sent)["ok"] is False
    assert conn.closed


def test_dispatch_reaches_manager_and_plugins(monkeypatch):
    handled = []
    broadcast = []

    class FakeManager:
        async def handle_notification(self, message):
            handled.append(message)

    async def fake_broadcast(message):
        broadcast.append(message)

    monkeypatch.setattr(title_server, "broadcast_to_plugins", fake_broadcast)

    asyncio.run(title_server.dispatch_notification(FakeManager(), {"type": "APPLY_RULE_NOW"}))

    assert handled == broadcast == [{"type": "APPLY_RULE_NOW"}]


def test_non_text_field_still_gets_a_response(storage):
    conn = FakeConnection(b'{"type": "add_rule", "targetText": 5}')

    title_server.handle_client_connection(conn, ("127.0.0.1", 5000), CommandHandler(storage))

    assert json.loads(conn.sent) == {"ok": False, "message": "targetText must be text."}


def test_failing_manager_is_logged_and_plugins_still_notified(monkeypatch, capsys):
    broadcast = []

    class FailingManager:
        async def handle_notification(self, message):
            raise OSError("rules file unreadable")

    async def fake_broadcast(message):
        broadcast.append(message)

    monkeypatch.setattr(title_server, "broadcast_to_plugins", fake_broadcast)

    asyncio.run(title_server.dispatch_notification(FailingManager(), {"type": "APPLY_RULE_NOW"}))

    assert broadcast == [{"type": "APPLY_RULE_NOW"}]
    output = capsys.readouterr().out
    assert "[ERROR]" in output
    assert "rules file unreadable" in output


def test_failed_notification_future_is_logged(capsys):
    future = concurrent.futures.Future()
    future.set_exception(RuntimeError("loop gone"))

    title_server.log_notification_failure(future)

    assert "loop gone" in capsys.readouterr().out


def test_completed_notification_future_logs_nothing(capsys):
    future = concurrent.futures.Future()
    future.set_result(None)

    title_server.log_notification_failure(future)

    assert "[ERROR]" not in capsys.readouterr().out
