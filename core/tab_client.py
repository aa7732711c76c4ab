"""Tab Client module for talking to the browser's remote-debugging endpoints.

This module provides core functionality for:
1. Listing the open page tabs of a browser instance
2. Looking up a single tab by id
3. Writing a new title into a tab's document
"""

import asyncio
import json
import os
from dataclasses import dataclass

import requests
import websockets
from dotenv import load_dotenv

from logger import Logger
from core.errors import UnscriptableTargetError

# === CONFIGURATION ===
load_dotenv()
DEBUG_HOST = os.getenv("DEBUG_HOST", "127.0.0.1")
DEBUG_PORT = int(os.getenv("DEBUG_PORT", "9222"))

logger = Logger("TabClient")


@dataclass(frozen=True)
class Tab:
    id: str
    url: str
    title: str


def page_websocket_url(debug_port: int, tab_id: str) -> str:
    return f"ws://{DEBUG_HOST}:{debug_port}/devtools/page/{tab_id}"


# === CONNECT TO TABS ===
def get_tabs(debug_port):
    """Get a list of all open tabs in a browser instance.

    Args:
        debug_port: The debug port of the browser instance.

    Returns:
        A list of Tab objects for every page target, in the browser's order.
        Returns None if the browser is not available.
    """
    logger.debug("Getting tabs")
    try:
        response = requests.get(f"http://{DEBUG_HOST}:{debug_port}/json", proxies={"http": None, "https": None})
        all_targets = response.json()
    except requests.exceptions.ConnectionError:
        logger.error("Could not connect to the browser")
        return None
    except ValueError as e:
        logger.error(f"Browser returned an unreadable tab list: {e}")
        return None

    if not isinstance(all_targets, list):
        logger.error(f"Browser returned an unexpected tab list: {all_targets!r}")
        return None

    # Only keep real tabs
    return [
        Tab(id=target.get("id"), url=target.get("url", ""), title=target.get("title"))
        for target in all_targets
        if isinstance(target, dict) and target.get("type") == "page" and target.get("id")
    ]


def get_tab(debug_port, tab_id):
    """Get a single tab by id, or None if it is gone or the browser is unavailable."""
    tabs = get_tabs(debug_port)
    if tabs is None:
        return None

    for tab in tabs:
        if tab.id == tab_id:
            return tab
    return None


# === WRITE TITLE ===
async def set_tab_title(debug_port, tab_id, title: str):
    """Write a new title into a tab's document.

    Args:
        debug_port: The debug port of the browser instance.
        tab_id: The target id of the tab.
        title: The title to assign to `document.title`.

    Raises UnscriptableTargetError when the tab cannot be reached or refuses the
    script (internal pages such as edge:// or chrome:// do).
    Called by the connection manager for every tab whose title must change.
    """
    command = {
        "id": 1,
        "method": "Runtime.evaluate",
        "params": {"expression": f"document.title = {json.dumps(title)}"},
    }

    try:
        async with websockets.connect(page_websocket_url(debug_port, tab_id), open_timeout=3, ping_interval=None) as websocket:
            await websocket.send(json.dumps(command))
            while True:
                response = json.loads(await websocket.recv())
                if response.get("id") == command["id"]:
                    break
    except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
        raise UnscriptableTargetError(f"Could not reach tab {tab_id}: {e}") from e

    if "error" in response or response.get("result", {}).get("exceptionDetails"):
        raise UnscriptableTargetError(f"Tab {tab_id} rejected the title update: {response}")

    logger.debug(f"Tab {tab_id} title set to {title!r}")
