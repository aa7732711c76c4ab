import json

import pytest

from client import socket_client


def test_add_with_scope_flags():
    payload = socket_client.build_payload(["add", "Inbox", "Mail", "--domain", "example.com", "--path", "/u/0"])

    assert payload == {
        "type": "add_rule",
        "targetText": "Inbox",
        "replacementText": "Mail",
        "domain": "example.com",
        "urlPath": "/u/0",
    }


def test_add_without_replacement_deletes_target():
    payload = socket_client.build_payload(["add", "--url", "https://example.com/a", "Inbox"])

    assert payload["replacementText"] == ""
    assert payload["urlExact"] == "https://example.com/a"


@pytest.mark.parametrize("argv, expected", [
    (["delete", "1"], {"type": "delete_rule", "id": "1"}),
    (["toggle", "1"], {"type": "toggle_rule", "id": "1"}),
    (["list"], {"type": "list_rules"}),
    (["clear"], {"type": "clear_rules"}),
    (["apply"], {"type": "apply_rules"}),
    (["export"], {"type": "export_rules"}),
    (["export", "out.json"], {"type": "export_rules"}),
])
def test_simple_commands(argv, expected):
    assert socket_client.build_payload(argv) == expected


def test_import_reads_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text('{"rules": []}', encoding="utf-8")

    assert socket_client.build_payload(["import", str(path)]) == {"type": "import_rules", "document": '{"rules": []}'}


@pytest.mark.parametrize("argv", [
    [],
    ["add"],
    ["add", "a", "b", "c"],
    ["add", "a", "--domain"],
    ["delete"],
    ["list", "extra"],
    ["import"],
    ["rename", "x"],
])
def test_invalid_commands(argv):
    with pytest.raises(ValueError):
        socket_client.build_payload(argv)


def test_main_reports_usage_errors(capsys):
    assert socket_client.main(["bogus"]) == 1
    assert "Usage" in capsys.readouterr().out


def test_main_lists_rules(monkeypatch, capsys):
    response = {"ok": True, "message": "1 rules.", "rules": [
        {"id": "1", "targetText": "Inbox", "replacementText": "", "domain": "example.com", "urlExact": "", "enabled": False},
    ]}
    monkeypatch.setattr(socket_client, "send_command", lambda payload: response)

    assert socket_client.main(["list"]) == 0
    assert "1: Inbox ->  [example.com] (disabled)" in capsys.readouterr().out


def test_main_writes_export_file(monkeypatch, tmp_path):
    document = {"version": 1, "exportedAt": "2026-10-19T08:30:00.000Z", "rules": []}
    monkeypatch.setattr(socket_client, "send_command", lambda payload: {"ok": True, "message": "", "document": document})
    target = tmp_path / "export.json"

    assert socket_client.main(["export", str(target)]) == 0
    assert json.loads(target.read_text(encoding="utf-8")) == document


def test_main_reports_failed_command(monkeypatch):
    monkeypatch.setattr(socket_client, "send_command", lambda payload: {"ok": False, "message": "Import file contains no valid rules."})
    assert socket_client.main(["apply"]) == 1


def test_main_without_server(monkeypatch):
    def refuse(payload):
        raise ConnectionRefusedError()

    monkeypatch.setattr(socket_client, "send_command", refuse)
    assert socket_client.main(["list"]) == 1
