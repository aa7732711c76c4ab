import asyncio
import json

import requests
import websockets
from websockets.exceptions import InvalidHandshake, InvalidStatus

from logger import Logger
from core.errors import UnscriptableTargetError
from core import notifications
from core.rule_store import active_rules
from core.tab_client import DEBUG_HOST, DEBUG_PORT, Tab, get_tab, get_tabs, set_tab_title
from core.tab_title_rewriter import compute_title_update, compute_updates

RECONNECT_DELAY = 2

""" ConnectionManager class listens to the browser's tab events and rewrites tab titles
with the stored rules whenever a tab appears, navigates, or the rules change """
class ConnectionManager:
    def __init__(self, storage, debug_port: int = DEBUG_PORT):
        """Initialize the ConnectionManager.

        Args:
            storage: The RuleStorage the rules are loaded from on every rewrite.
            debug_port: The browser's remote-debugging port.

        Called by the title server when it starts.
        """
        self.logger = Logger("ConnectionManager")
        self.storage = storage
        self.debug_port = debug_port
        # Last title written per tab, so our own title change does not trigger another pass
        self.written_titles = {}

    # === COLLABORATORS ===
    def load_rules(self) -> list:
        """Load the stored rules and keep only the ones that can match."""
        result = self.storage.load()
        if result.migrated:
            self.logger.info("Legacy rule record migrated on load")
        return active_rules(result.rules)

    async def list_tabs(self):
        return get_tabs(self.debug_port)

    async def get_tab(self, tab_id: str):
        return get_tab(self.debug_port, tab_id)

    async def set_title(self, tab_id: str, title: str):
        await set_tab_title(self.debug_port, tab_id, title)

    # === REWRITING ===
    async def write_title(self, tab_id: str, title: str):
        """Write a title to one tab, ignoring tabs that cannot be scripted.

        Called by apply_rules_to_all_tabs() and apply_rules_to_tab().
        Returns: True if the title was written.
        """
        try:
            await self.set_title(tab_id, title)
        except UnscriptableTargetError as e:
            self.logger.debug(f"Skipping tab {tab_id}: {e}")
            return False

        self.written_titles[tab_id] = title
        return True

    async def apply_rules_to_all_tabs(self) -> int:
        """Rewrite the title of every open tab that a rule matches.

        The per-tab writes run concurrently and a failing tab does not stop the others.
        Called on browser connection and whenever an APPLY_RULE_NOW notification arrives.
        Returns: The number of tabs whose title was written.
        """
        rules = self.load_rules()
        if not rules:
            return 0

        tabs = await self.list_tabs()
        if tabs is None:
            self.logger.debug("Browser not available, nothing to rewrite")
            return 0

        updates = compute_updates(rules, tabs)
        results = await asyncio.gather(
            *[self.write_title(tab_id, title) for tab_id, title in updates],
            return_exceptions=True
        )

        written = 0
        for (tab_id, _), result in zip(updates, results):
            if isinstance(result, Exception):
                self.logger.error(f"Failed to rewrite tab {tab_id}: {result}")
            elif result:
                written += 1

        self.logger.info(f"Applied {len(rules)} rules to {len(tabs)} tabs, {written} titles rewritten")
        return written

    async def apply_rules_to_tab(self, tab_id: str, tab: Tab | None = None) -> bool:
        """Rewrite the title of a single tab if any rule matches it.

        Args:
            tab_id: The target id of the tab.
            tab: The tab as already reported by the browser; looked up when omitted.

        Called by the tab event handlers.
        Returns: True if the title was written.
        """
        rules = self.load_rules()
        if not rules:
            return False

        if tab is None:
            tab = await self.get_tab(tab_id)
        if tab is None:
            return False

        new_title = compute_title_update(rules, tab)
        if new_title is None:
            return False

        return await self.write_title(tab_id, new_title)

    async def handle_notification(self, message: dict):
        """React to a notification from the command channel or a plugin.

        Args:
            message: A dictionary whose "type" is APPLY_RULE_NOW or CLEAR_RULE.
        """
        match message.get("type"):
            case notifications.APPLY_RULE_NOW:
                await self.apply_rules_to_all_tabs()
            case notifications.CLEAR_RULE:
                # Titles already rewritten stay as they are
                self.logger.info("Rules cleared")
            case other:
                self.logger.warning(f"Ignoring unknown notification: {other}")

    # === BROWSER EVENTS ===
    async def listen_to_browser_events(self):
        """Continuously attempt to connect to and listen for events from the browser.

        This method runs in an infinite loop, attempting to connect to the browser's debugging interface
        and listening for tab events. If the connection is lost, it will attempt to reconnect.
        Called by the title server's main().
        Returns: None
        """
        while True:
            # Get the WebSocket URL for the browser's debugging interface
            ws_url = await self.get_browser_websocket_url()

            if ws_url:
                try:
                    self.logger.info(f"Connecting to browser WebSocket on port {self.debug_port}...")
                    async with websockets.connect(ws_url, open_timeout=3, ping_interval=None) as websocket:
                        self.logger.info("Connected to browser WebSocket")
                        # Enable target discovery to receive tab events
                        await websocket.send(json.dumps({
                            "id": 1,
                            "method": "Target.setDiscoverTargets",
                            "params": {"discover": True}
                        }))

                        await self.apply_rules_to_all_tabs()
                        await self.event_loop(websocket)
                except InvalidStatus as e:
                    self.logger.error(f"Browser WebSocket handshake failed: {e}")
                except InvalidHandshake as e:
                    self.logger.error(f"Browser WebSocket connection rejected: {e}")
                except Exception as e:
                    self.logger.error(f"Error connecting to browser WebSocket: {e}")
            else:
                self.logger.debug("Browser not available yet...")

            # Wait before attempting to reconnect
            await asyncio.sleep(RECONNECT_DELAY)

    async def get_browser_websocket_url(self):
        """Retrieve the WebSocket URL for the browser's debugging interface.

        Returns: The WebSocket URL, or None if the browser is not available.
        """
        try:
            response = requests.get(f"http://{DEBUG_HOST}:{self.debug_port}/json/version", proxies={"http": None, "https": None})
            data = response.json()
            return data["webSocketDebuggerUrl"]
        except (requests.exceptions.RequestException, ValueError, KeyError):
            return None

    async def event_loop(self, websocket):
        """Receive browser messages until the connection closes."""
        try:
            while True:
                message = await websocket.recv()
                event = json.loads(message)
                await self.handle_event(event)
        except websockets.exceptions.ConnectionClosed:
            self.logger.info("Browser WebSocket closed. Waiting for reconnection...")

    async def handle_event(self, event: dict):
        """Route incoming browser events to appropriate handlers based on event type."""
        match event.get("method"):
            case "Target.targetCreated" | "Target.targetInfoChanged":
                await self.handle_tab_event(event)
            case "Target.targetDestroyed":
                await self.handle_tab_closed_event(event)

    async def handle_tab_event(self, event: dict):
        """Handle a tab that was created, navigated or retitled.

        Args:
            event: The event data containing the tab's target info.

        Events caused by our own title write are recognised by comparing against the
        last title written to that tab and ignored.
        Returns: True if the tab's title was rewritten.
        """
        target_info = event.get("params", {}).get("targetInfo", {})
        target_id = target_info.get("targetId")
        if target_info.get("type") != "page" or not target_id:
            return False

        title = target_info.get("title")
        url = target_info.get("url", "")

        if self.written_titles.get(target_id) == title:
            return False

        self.logger.debug(f"Tab event from browser - target id: {target_id}, title: {title}, url: {url}")
        return await self.apply_rules_to_tab(target_id, Tab(id=target_id, url=url, title=title))

    async def handle_tab_closed_event(self, event: dict):
        """Forget the title written to a tab that was closed."""
        target_id = event.get("params", {}).get("targetId")
        if target_id and self.written_titles.pop(target_id, None) is not None:
            self.logger.debug(f"Tab closed: {target_id}")
