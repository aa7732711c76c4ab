import asyncio
import json

import pytest
import requests

from core import tab_client
from core.errors import UnscriptableTargetError
from core.tab_client import Tab


class FakeResponse:
    def __init__(self, data):
        self.data = data

    def json(self):
        return self.data


class FakePage:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        return json.dumps(self.responses.pop(0))


TARGETS = [
    {"id": "A", "type": "page", "url": "https://example.com/", "title": "Example"},
    {"id": "W", "type": "service_worker", "url": "https://example.com/sw.js", "title": "sw"},
    {"id": "B", "type": "page", "url": "chrome://newtab/", "title": "New Tab"},
]


@pytest.fixture
def browser(monkeypatch):
    requested = []

    def fake_get(url, **kwargs):
        requested.append(url)
        return FakeResponse(TARGETS)

    monkeypatch.setattr(tab_client.requests, "get", fake_get)
    return requested


def test_get_tabs_keeps_pages_only(browser):
    tabs = tab_client.get_tabs(9222)

    assert tabs == [
        Tab(id="A", url="https://example.com/", title="Example"),
        Tab(id="B", url="chrome://newtab/", title="New Tab"),
    ]
    assert browser == ["http://127.0.0.1:9222/json"]


def test_get_tab_by_id(browser):
    assert tab_client.get_tab(9222, "B").title == "New Tab"
    assert tab_client.get_tab(9222, "W") is None


def test_browser_down_returns_none(monkeypatch):
    def refuse(url, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(tab_client.requests, "get", refuse)

    assert tab_client.get_tabs(9222) is None
    assert tab_client.get_tab(9222, "A") is None


def test_set_tab_title_evaluates_assignment(monkeypatch):
    page = FakePage({"method": "Some.event"}, {"id": 1, "result": {"result": {"type": "string"}}})
    urls = []

    def fake_connect(url, **kwargs):
        urls.append(url)
        return page

    monkeypatch.setattr(tab_client.websockets, "connect", fake_connect)

    asyncio.run(tab_client.set_tab_title(9222, "A", 'Say "hi"'))

    assert urls == ["ws://127.0.0.1:9222/devtools/page/A"]
    assert page.sent[0]["method"] == "Runtime.evaluate"
    assert page.sent[0]["params"]["expression"] == 'document.title = "Say \\"hi\\""'


@pytest.mark.parametrize("response", [
    {"id": 1, "error": {"message": "Cannot access a chrome:// URL"}},
    {"id": 1, "result": {"exceptionDetails": {"text": "Uncaught"}}},
])
def test_set_tab_title_rejected_by_page(monkeypatch, response):
    monkeypatch.setattr(tab_client.websockets, "connect", lambda url, **kwargs: FakePage(response))

    with pytest.raises(UnscriptableTargetError):
        asyncio.run(tab_client.set_tab_title(9222, "B", "x"))


def test_set_tab_title_unreachable_tab(monkeypatch):
    def refuse(url, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(tab_client.websockets, "connect", refuse)

    with pytest.raises(UnscriptableTargetError):
        asyncio.run(tab_client.set_tab_title(9222, "gone", "x"))


@pytest.mark.parametrize("body", [{"error": "nope"}, "tabs", None])
def test_unexpected_tab_list_returns_none(monkeypatch, body):
    monkeypatch.setattr(tab_client.requests, "get", lambda url, **kwargs: FakeResponse(body))

    assert tab_client.get_tabs(9222) is None


def test_non_object_targets_are_skipped(monkeypatch):
    monkeypatch.setattr(tab_client.requests, "get", lambda url, **kwargs: FakeResponse(["junk", 3, TARGETS[0]]))

    assert tab_client.get_tabs(9222) == [Tab(id="A", url="https://example.com/", title="Example")]
