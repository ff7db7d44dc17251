"""Simple terminal chat client for a roomcast server.

Joins one room, prints every event from the server, and sends each line
typed on stdin as a chat message to the current room. Lines starting with
``/`` are commands: ``/join <room>``, ``/leave <room>``, ``/all <text>``,
``/rooms``, ``/quit``. ``/join`` makes that room current; leaving the
current room leaves none.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK


def _json_dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


USAGE = "Commands: /join <room>, /leave <room>, /all <text>, /rooms, /quit"


def parse_line(line: str, room: Optional[str]) -> Optional[dict[str, Any]]:
    """Turn a line of input into a client message (None means quit).

    Raises:
        ValueError: Unknown or incomplete command, or chat text while no
            room is current
    """
    line = line.strip()
    if not line.startswith("/"):
        if room is None:
            raise ValueError("Not in a room, use /join <room> first")
        return {"type": "chat_message", "room": room, "message": line}

    command, _, rest = line[1:].partition(" ")
    rest = rest.strip()
    if command == "quit":
        return None
    if command == "join" and rest:
        return {"type": "join_room", "room": rest}
    if command == "leave" and rest:
        return {"type": "leave_room", "room": rest}
    if command == "all" and rest:
        return {"type": "broadcast", "message": rest}
    if command == "rooms":
        return {"type": "list_rooms"}
    raise ValueError(f"Unknown command: {line}")


def next_room(message: dict[str, Any], room: Optional[str]) -> Optional[str]:
    """Room that plain text goes to after ``message`` is sent."""
    if message["type"] == "join_room":
        return message["room"]
    if message["type"] == "leave_room" and message["room"] == room:
        return None
    return room


async def _print_events(websocket: ClientConnection) -> None:
    try:
        async for raw in websocket:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                print(f"<-- {raw}")
                continue

            event_type = message.get("type")
            if event_type == "new_message":
                print(f"[{message.get('room')}] {message.get('username')}: {message.get('message')}")
            elif event_type == "broadcast":
                print(f"[*] {message.get('username')}: {message.get('message')}")
            elif event_type in {"user_joined", "user_left"}:
                verb = "joined" if event_type == "user_joined" else "left"
                print(f"[{message.get('room')}] {message.get('username')} {verb}")
            else:
                print(f"<-- {_json_dumps(message)}")
    except ConnectionClosedOK:
        print("🔌 Connection closed by server.")
    except ConnectionClosedError as exc:
        print(f"⚠️  Connection error: {exc}")


async def run_client(url: str, room: str, username: Optional[str]) -> None:
    print(f"Connecting to {url} ...")
    async with connect(url) as websocket:
        print(f"✅ Connected. Joining {room!r} ...")
        join = {"type": "join_room", "room": room}
        if username:
            join["username"] = username
        await websocket.send(_json_dumps(join))

        printer = asyncio.create_task(_print_events(websocket))
        loop = asyncio.get_running_loop()
        try:
            while not printer.done():
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                if not line.strip():
                    continue
                try:
                    message = parse_line(line, room)
                except ValueError as e:
                    print(f"⚠️  {e}\n{USAGE}")
                    continue
                if message is None:
                    break
                await websocket.send(_json_dumps(message))
                room = next_room(message, room)
        finally:
            await websocket.close()
            await printer


def main() -> int:
    parser = argparse.ArgumentParser(description="Terminal chat client for roomcast")
    parser.add_argument("--url", default="ws://localhost:8080", help="Server URL")
    parser.add_argument("--room", default="general", help="Room to join")
    parser.add_argument("--username", default=None, help="Display name")
    parser.add_argument("--token", default=None, help="Auth token, sent as ?token=")
    args = parser.parse_args()

    url = args.url
    if args.token:
        url = f"{url.rstrip('/')}/?token={args.token}"

    try:
        asyncio.run(run_client(url, args.room, args.username))
    except KeyboardInterrupt:
        print("\n🛑 Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
