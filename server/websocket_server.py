"""WebSocket Server module for notifying browser plugins about rule changes.

This module provides functionality to:
1. Manage WebSocket connections with plugins
2. Broadcast APPLY_RULE_NOW and CLEAR_RULE notifications to connected plugins
3. Let plugins request a rewrite pass or the current rule list
"""

import asyncio
import json

import websockets

from logger import Logger
from core.notifications import APPLY_RULE_NOW
from core.rule_store import rule_to_dict

logger = Logger("WebSocketServer")

# Keep track of all connected plugin websockets
connected_websockets = set()

# Set by configure_plugin_server()
plugin_state = {"storage": None, "notify": None}


def configure_plugin_server(storage, notify):
    """Give the plugin handlers access to the rule storage and the notification dispatcher.

    Args:
        storage: The RuleStorage used to answer first_connection requests.
        notify: An async callable receiving notification dictionaries.

    Called by the title server before the WebSocket server starts.
    """
    plugin_state["storage"] = storage
    plugin_state["notify"] = notify


async def websocket_handler(websocket):
    """Handle a WebSocket connection from a plugin.

    Args:
        websocket: The WebSocket connection object.

    Messages understood:
    - {"type": "APPLY_RULE_NOW"}: rewrite every open tab now
    - {"type": "first_connection"}: answered with the current rule list

    Called by the WebSocket server for each new plugin connection.
    """
    logger.info("Plugin connected via WebSocket")
    connected_websockets.add(websocket)
    try:
        async for message in websocket:
            logger.debug(f"Received from plugin: {message}")
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                logger.error(f"Invalid message received from plugin: {message}")
                continue

            if not isinstance(payload, dict):
                logger.error(f"Invalid message received from plugin: {message}")
                continue

            if payload.get("type") == APPLY_RULE_NOW and plugin_state["notify"]:
                await plugin_state["notify"](payload)
            elif payload.get("type") == "first_connection":
                await websocket.send(json.dumps(handle_first_connection()))

    except websockets.exceptions.ConnectionClosed:
        logger.info("Plugin disconnected")
    finally:
        connected_websockets.discard(websocket)


def handle_first_connection() -> dict:
    """Build the current rule list sent to a newly connected plugin."""
    storage = plugin_state["storage"]
    rules = storage.load().rules if storage else []
    return {
        "type": "current_rules",
        "rules": [rule_to_dict(rule) for rule in rules]
    }


async def start_websocket_server(host: str, port: int):
    """Start the WebSocket server and serve until it is closed.

    Called by the title server's main().
    """
    server = await websockets.serve(websocket_handler, host, port)
    logger.info(f"WebSocket server started on {host}:{port}")
    await server.wait_closed()


async def broadcast_to_plugins(event: dict):
    """Broadcast a notification to all connected plugin clients.

    A plugin that fails to receive it does not affect the others.
    Called by the title server for every notification.
    """
    if connected_websockets:
        message = json.dumps(event)
        logger.debug(f"Broadcasting to plugins: type:{event.get('type')}")
        await asyncio.gather(*[ws.send(message) for ws in list(connected_websockets)], return_exceptions=True)
