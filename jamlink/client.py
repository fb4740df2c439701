from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import websockets

from jamlink.events import SynthesisEvent, to_wire
from jamlink.synth_core import SynthCore, Transport


class JamClient(Transport):
    """Realtime relay transport for a SynthCore.

    Local events are queued with send() and written by a background task so
    the core never suspends on the network. Inbound `midi` payloads go to
    the core as remote events.
    """

    def __init__(self, url: str, core: SynthCore, drain_timeout: float = 1.0) -> None:
        self.url = url
        self.drain_timeout = drain_timeout
        self.core = core
        self.ws = None
        self.connected = False
        self.connection_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.participants = 0
        self._pending_room: Optional[str] = None
        self._outbox: "asyncio.Queue[str]" = asyncio.Queue()
        self._tasks: List["asyncio.Task[None]"] = []
        self.closed = asyncio.Event()
        core.transport = self

    async def connect(self) -> None:
        self.ws = await websockets.connect(self.url)
        self.connected = True
        self.closed.clear()
        self._tasks = [asyncio.create_task(self._reader()), asyncio.create_task(self._writer())]
        print(f"[client] connected to {self.url}", flush=True)

    async def close(self) -> None:
        """Stop accepting events, flush what is already queued, then disconnect."""
        self.connected = False
        if self.ws is not None and any(not t.done() for t in self._tasks):
            try:
                await asyncio.wait_for(self._outbox.join(), self.drain_timeout)
            except asyncio.TimeoutError:
                print(f"[client] dropped {self._outbox.qsize()} unsent message(s) on close", flush=True)
        for t in self._tasks:
            t.cancel()
        if self.ws is not None:
            await self.ws.close()
        self.closed.set()

    # --- Outbound ---
    def _put(self, t: str, payload: Any = None) -> None:
        obj: Dict[str, Any] = {"type": t}
        if payload is not None:
            obj["payload"] = payload
        self._outbox.put_nowait(json.dumps(obj))

    def send(self, event: SynthesisEvent) -> None:
        self._put("midi", to_wire(event))

    def join(self, room_id: str) -> None:
        room_id = room_id.strip()
        if not room_id:
            return
        self._pending_room = room_id
        self._put("joinRoom", {"roomId": room_id})

    def leave(self) -> None:
        self._put("leaveRoom")
        self.room_id = None
        self.participants = 0
        self.core.set_status("Disconnected from room")

    async def _writer(self) -> None:
        while True:
            msg = await self._outbox.get()
            try:
                await self.ws.send(msg)
            except websockets.ConnectionClosed:
                break
            finally:
                self._outbox.task_done()

    # --- Inbound ---
    async def _reader(self) -> None:
        try:
            async for raw in self.ws:
                try:
                    obj = json.loads(raw)
                except ValueError:
                    continue
                if not isinstance(obj, dict):
                    continue
                try:
                    await self.handle_message(obj)
                except Exception as e:
                    print(f"[client] error handling {obj.get('type')!r}: {e}", flush=True)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.connected = False
            self.closed.set()
            print("[client] disconnected", flush=True)

    async def handle_message(self, obj: Dict[str, Any]) -> None:
        t = obj.get("type")
        payload = obj.get("payload")
        if t == "midi":
            await self.core.handle_remote(payload)
        elif t == "hello":
            if isinstance(payload, dict):
                self.connection_id = payload.get("connectionId")
        elif t == "roomJoined":
            room_id = payload.get("roomId") if isinstance(payload, dict) else payload
            self.room_id = room_id
            self._pending_room = None
            self.core.set_status(f"Connected to room: {room_id}")
        elif t == "roomFull":
            room = self._pending_room or "room"
            self._pending_room = None
            self.core.set_status(f"{room} is full (maximum 2 players per room) - try another room", is_error=True)
        elif t == "roomUpdate":
            if isinstance(payload, dict):
                self.participants = int(payload.get("participants", 0))
            self.core.set_status(f"Room {self.room_id}: {self.participants}/2 players")
        elif t == "error":
            print(f"[client] server error: {payload}", flush=True)
