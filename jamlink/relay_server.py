"""Relay server pairing jam participants into rooms of two.

Wire envelope is {"type", "ts", "payload"}. Client -> server types:
joinRoom, leaveRoom, midi, ping, getState. Server -> client types: hello,
roomJoined, roomFull, roomUpdate, midi, pong, state, error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import time
import uuid
from typing import Any, Dict, Optional

import websockets

from jamlink.rooms import RoomRegistry


PROTOCOL_VERSION = 1


def _envelope(t: str, payload: Any = None) -> str:
    obj: Dict[str, Any] = {"type": t, "ts": time.time()}
    if payload is not None:
        obj["payload"] = payload
    return json.dumps(obj)


class RelayServer:
    def __init__(self, capacity: int = 2) -> None:
        self.outboxes: Dict[str, "asyncio.Queue[str]"] = {}
        self.registry = RoomRegistry(self.send, capacity=capacity)

    # --- Connections ---
    def open_connection(self, conn_id: Optional[str] = None) -> str:
        conn_id = conn_id or uuid.uuid4().hex[:12]
        self.outboxes[conn_id] = asyncio.Queue()
        return conn_id

    def close_connection(self, conn_id: str) -> None:
        # Disconnect is an implicit leave
        self.registry.leave(conn_id)
        self.outboxes.pop(conn_id, None)

    def send(self, conn_id: str, t: str, payload: Any = None) -> None:
        q = self.outboxes.get(conn_id)
        if q is not None:
            q.put_nowait(_envelope(t, payload))

    # --- Message dispatch ---
    def handle_message(self, conn_id: str, obj: Dict[str, Any]) -> None:
        t = obj.get("type")
        payload = obj.get("payload")
        if t == "joinRoom":
            room_id = payload.get("roomId") if isinstance(payload, dict) else payload
            if room_id is None:
                room_id = obj.get("roomId")
            try:
                self.registry.join(conn_id, room_id)
            except ValueError:
                self.send(conn_id, "error", {"ok": False, "error": "invalid_room"})
        elif t == "leaveRoom":
            self.registry.leave(conn_id)
        elif t == "midi":
            self.registry.relay(conn_id, payload)
        elif t == "ping":
            self.send(conn_id, "pong")
        elif t == "getState":
            room_id = self.registry.room_of(conn_id)
            participants = len(self.registry.members(room_id)) if room_id else 0
            self.send(conn_id, "state", {"roomId": room_id, "participants": participants})
        else:
            self.send(conn_id, "error", {"ok": False, "error": "unknown_type", "type": t})

    def get_metrics(self) -> Dict[str, int]:
        m = self.registry.get_metrics()
        m["clients"] = len(self.outboxes)
        return m


async def _writer(ws, queue: "asyncio.Queue[str]") -> None:
    while True:
        msg = await queue.get()
        try:
            await ws.send(msg)
        except websockets.ConnectionClosed:
            break


async def serve_relay(server: RelayServer, host: str, port: int):
    async def handler(ws, *maybe_path):
        conn_id = server.open_connection()
        print(f"[relay] client connected: {conn_id} {getattr(ws, 'remote_address', None)}", flush=True)
        writer = asyncio.create_task(_writer(ws, server.outboxes[conn_id]))
        server.send(conn_id, "hello", {"protocol": PROTOCOL_VERSION, "connectionId": conn_id})
        try:
            async for message in ws:
                try:
                    obj = json.loads(message)
                except ValueError:
                    continue
                if not isinstance(obj, dict):
                    continue
                try:
                    server.handle_message(conn_id, obj)
                except Exception as e:
                    print(f"[relay] error handling {obj.get('type')!r} from {conn_id}: {e}", flush=True)
                    server.send(conn_id, "error", {"ok": False, "error": "exception", "details": str(e)})
        except websockets.ConnectionClosed:
            pass
        finally:
            print(f"[relay] client disconnected: {conn_id}", flush=True)
            server.close_connection(conn_id)
            writer.cancel()

    async with websockets.serve(handler, host, port):
        print(f"[relay] listening on ws://{host}:{port}", flush=True)
        await asyncio.Future()


def main():
    ap = argparse.ArgumentParser(description="Jam relay server (rooms of two, MIDI event relay)")
    ap.add_argument("--host", default=os.environ.get("JAMLINK_HOST", "127.0.0.1"))
    ap.add_argument("--port", type=int, default=int(os.environ.get("JAMLINK_PORT", "3000")))
    args = ap.parse_args()

    server = RelayServer()
    try:
        asyncio.run(serve_relay(server, args.host, args.port))
    except KeyboardInterrupt:
        print("[relay] shutting down", flush=True)


if __name__ == "__main__":
    main()
