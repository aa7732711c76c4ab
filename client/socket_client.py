import json
import os
import socket
import sys

from dotenv import load_dotenv

from logger import Logger

load_dotenv()

HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', '8765'))

logger = Logger("SocketClient")

USAGE = """Usage: python socket_client.py <command> [args]
  add <target> [replacement] [--domain D] [--path P] [--url U]
  delete <id>
  toggle <id>
  list
  clear
  import <file>
  export [file]
  apply"""

FLAG_FIELDS = {"--domain": "domain", "--path": "urlPath", "--url": "urlExact"}


def build_add_payload(args) -> dict:
    payload = {"type": "add_rule"}
    positional = []
    i = 0
    while i < len(args):
        if args[i] in FLAG_FIELDS:
            if i + 1 >= len(args):
                raise ValueError(f"{args[i]} needs a value")
            payload[FLAG_FIELDS[args[i]]] = args[i + 1]
            i += 2
        else:
            positional.append(args[i])
            i += 1

    if not positional or len(positional) > 2:
        raise ValueError("add needs a target text and an optional replacement")
    payload["targetText"] = positional[0]
    payload["replacementText"] = positional[1] if len(positional) == 2 else ""
    return payload


def build_payload(argv) -> dict:
    """Turn command-line arguments into a command payload.

    Raises ValueError for unknown commands or missing arguments.
    """
    if not argv:
        raise ValueError("missing command")

    command, args = argv[0], argv[1:]
    match command:
        case "add":
            return build_add_payload(args)
        case "delete" | "toggle" if len(args) == 1:
            return {"type": f"{command}_rule", "id": args[0]}
        case "list" | "clear" | "apply" if not args:
            return {"type": f"{command}_rules"}
        case "export" if len(args) <= 1:
            return {"type": "export_rules"}
        case "import" if len(args) == 1:
            with open(args[0], "r", encoding="utf-8") as f:
                return {"type": "import_rules", "document": f.read()}
        case _:
            raise ValueError(f"invalid command: {' '.join(argv)}")


def send_command(payload: dict) -> dict:
    """Send one command to the title server and return its JSON response."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.connect((HOST, PORT))
        s.sendall(json.dumps(payload).encode('utf-8'))
        s.shutdown(socket.SHUT_WR)

        chunks = []
        while True:
            chunk = s.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return json.loads(b"".join(chunks).decode('utf-8'))


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        payload = build_payload(argv)
    except (ValueError, OSError) as e:
        logger.error(str(e))
        print(USAGE)
        return 1

    logger.info(f"Connecting to {HOST}:{PORT}")
    try:
        response = send_command(payload)
    except ConnectionRefusedError:
        logger.error("Connection refused. Please ensure the server is running.")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"An error occurred: {e}")
        return 1

    if not response.get("ok"):
        logger.error(response.get("message", "Command failed"))
        return 1

    logger.info(f"Response: {response.get('message')}")
    if payload["type"] == "list_rules":
        for rule in response.get("rules", []):
            scope = rule.get("urlExact") or rule.get("domain") or "all domains"
            state = "" if rule.get("enabled") else " (disabled)"
            print(f"{rule['id']}: {rule['targetText']} -> {rule['replacementText']} [{scope}]{state}")
    elif payload["type"] == "export_rules":
        text = json.dumps(response["document"], indent=2, ensure_ascii=False)
        if len(argv) > 1:
            with open(argv[1], "w", encoding="utf-8") as f:
                f.write(text)
            logger.info(f"Rules written to {argv[1]}")
        else:
            print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
