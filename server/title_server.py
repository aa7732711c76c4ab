"""Title Server module that coordinates the TCP and WebSocket servers for tab title rewriting.

This module sets up and manages:
1. A TCP server for rule-management commands sent by the command-line client
2. A WebSocket server that notifies plugins about rule changes
3. A connection manager that rewrites tab titles as the browser reports tab events

Notifications raised by commands (on the TCP threads) are handed to the event loop,
which rewrites the open tabs and broadcasts the notification to plugins.
"""

import asyncio
import json
import os
import socket
import threading

from dotenv import load_dotenv

from logger import Logger
from core.command_handler import CommandHandler
from core.connection_manager import ConnectionManager
from core.rule_storage import RuleStorage
from server.websocket_server import broadcast_to_plugins, configure_plugin_server, start_websocket_server

load_dotenv()

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8765"))
WS_PORT = int(os.getenv("WS_PORT", "8766"))
RULES_FILE = os.getenv("RULES_FILE", "rename_rules.json")

logger = Logger("TitleServer")


def read_request(conn) -> str:
    """Read a whole command; the client closes its sending side when done."""
    chunks = []
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8").strip()


def handle_client_connection(conn, addr, command_handler):
    """Handle a single TCP client connection.

    Args:
        conn: The socket connection object for the client.
        addr: The address tuple (host, port) of the client.
        command_handler: The CommandHandler executing the command.

    This function:
    1. Receives a command from the client
    2. Processes the command using the command handler
    3. Sends the JSON response back to the client
    4. Closes the connection

    Called by the TCP server thread for each new client connection.
    """
    logger.info(f"Connected: {addr}")
    try:
        data = read_request(conn)
        if data:
            response = command_handler.handle_command(data)
        else:
            response = {"ok": False, "message": "Empty command."}
        conn.sendall(json.dumps(response).encode("utf-8"))
    except Exception as e:
        logger.error(f"Error handling client connection: {e}")
    finally:
        conn.close()


def start_tcp_server(command_handler):
    """Start the TCP server for handling command-line commands.

    Spawns a new thread for each client connection and runs until the program is
    terminated. Called by main() in a separate thread.
    """
    logger.info(f"Starting TCP server on {HOST}:{PORT}")
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind((HOST, PORT))
        s.listen()
        while True:
            conn, addr = s.accept()
            client_thread = threading.Thread(target=handle_client_connection, args=(conn, addr, command_handler), daemon=True)
            client_thread.start()


async def dispatch_notification(connection_manager, message: dict):
    """Deliver a notification to the connection manager and to every plugin.

    A failure on one side is logged and does not stop the other.
    """
    logger.debug(f"Dispatching notification: {message.get('type')}")
    results = await asyncio.gather(
        connection_manager.handle_notification(message),
        broadcast_to_plugins(message),
        return_exceptions=True
    )
    for receiver, result in zip(("connection manager", "plugins"), results):
        if isinstance(result, Exception):
            logger.error(f"Notification {message.get('type')} failed in {receiver}: {result!r}")


def log_notification_failure(future):
    """Done-callback for notifications scheduled from the TCP threads."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Notification task failed: {error!r}")


async def main():
    """Main entry point for the Title Server.

    This function:
    1. Opens the rule storage and builds the connection manager
    2. Starts the TCP command server in a background thread
    3. Starts the WebSocket server and browser event listener concurrently

    The function runs until the program is terminated.
    """
    loop = asyncio.get_running_loop()
    storage = RuleStorage(RULES_FILE)
    connection_manager = ConnectionManager(storage)

    async def notify(message: dict):
        await dispatch_notification(connection_manager, message)

    def notify_from_thread(message: dict):
        # Fire and forget: the command thread does not wait for the rewrite
        future = asyncio.run_coroutine_threadsafe(notify(message), loop)
        future.add_done_callback(log_notification_failure)

    command_handler = CommandHandler(storage, notify_from_thread)
    configure_plugin_server(storage, notify)

    tcp_thread = threading.Thread(target=start_tcp_server, args=(command_handler,), daemon=True)
    tcp_thread.start()

    await asyncio.gather(
        start_websocket_server(HOST, WS_PORT),
        connection_manager.listen_to_browser_events()
    )


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
