from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Set


# notify(connection_id, message_type, payload)
Notifier = Callable[[str, str, Any], None]

ROOM_CAPACITY = 2


class RoomRegistry:
    """In-memory pairing of connections into rooms of at most `capacity`.

    Keeps room_id -> members and the inverse connection -> room_id, so a
    connection is in at most one room. All methods run to completion without
    suspending; notifications are handed to `notify` synchronously, which
    makes a broadcast atomic with respect to joins and leaves.
    """

    def __init__(self, notify: Notifier, capacity: int = ROOM_CAPACITY) -> None:
        self.notify = notify
        self.capacity = int(capacity)
        self._rooms: Dict[str, Set[str]] = {}
        self._room_of: Dict[str, str] = {}
        self.metrics: Dict[str, int] = {"joins": 0, "rejected_joins": 0, "leaves": 0, "relayed": 0}

    # --- Queries ---
    def room_of(self, conn_id: str) -> Optional[str]:
        return self._room_of.get(conn_id)

    def members(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    def rooms(self) -> Dict[str, List[str]]:
        return {rid: sorted(m) for rid, m in self._rooms.items()}

    def get_metrics(self) -> Dict[str, int]:
        out = dict(self.metrics)
        out["rooms"] = len(self._rooms)
        out["connections"] = len(self._room_of)
        return out

    # --- Membership ---
    def _broadcast_update(self, room_id: str) -> None:
        members = self._rooms.get(room_id)
        if not members:
            return
        payload = {"participants": len(members)}
        for m in sorted(members):
            self.notify(m, "roomUpdate", payload)

    def join(self, conn_id: str, room_id: str) -> bool:
        if not isinstance(room_id, str) or not room_id.strip():
            raise ValueError("room id must be a non-empty string")
        room_id = room_id.strip()
        current = self._room_of.get(conn_id)
        if current == room_id:
            # Already a member: re-confirm without changing state
            self.notify(conn_id, "roomJoined", {"roomId": room_id})
            self._broadcast_update(room_id)
            return True
        target = self._rooms.get(room_id)
        if target is not None and len(target) >= self.capacity:
            # Rejected joins leave any previous membership untouched
            self.metrics["rejected_joins"] += 1
            self.notify(conn_id, "roomFull", {})
            print(f"[room] {conn_id} rejected from full room {room_id}", flush=True)
            return False
        if current is not None:
            self.leave(conn_id)
        self._rooms.setdefault(room_id, set()).add(conn_id)
        self._room_of[conn_id] = room_id
        self.metrics["joins"] += 1
        self.notify(conn_id, "roomJoined", {"roomId": room_id})
        self._broadcast_update(room_id)
        print(f"[room] {conn_id} joined {room_id}", flush=True)
        return True

    def leave(self, conn_id: str) -> Optional[str]:
        room_id = self._room_of.pop(conn_id, None)
        if room_id is None:
            return None
        members = self._rooms.get(room_id, set())
        members.discard(conn_id)
        self.metrics["leaves"] += 1
        if not members:
            self._rooms.pop(room_id, None)
            print(f"[room] {conn_id} left {room_id}; room deleted", flush=True)
        else:
            self._broadcast_update(room_id)
            print(f"[room] {conn_id} left {room_id}", flush=True)
        return room_id

    # --- Relay ---
    def relay(self, conn_id: str, event: Any) -> List[str]:
        """Forward `event` verbatim to every other member of the sender's room."""
        room_id = self._room_of.get(conn_id)
        if room_id is None:
            return []
        recipients = sorted(m for m in self._rooms.get(room_id, ()) if m != conn_id)
        for m in recipients:
            self.notify(m, "midi", event)
        self.metrics["relayed"] += len(recipients)
        return recipients
