from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, List, Tuple


class Voice(Enum):
    LEFT = "left"
    RIGHT = "right"


VOICES = (Voice.LEFT, Voice.RIGHT)


class EngineNotReady(Exception):
    """Audio start failed or has not completed."""


class AudioEngine:
    """Capability contract of the external audio rendering engine."""

    async def start(self) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def attack(self, voice: Voice, note_name: str, gain: float) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def release(self, voice: Voice, note_name: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def set_parameter(self, voice: Voice, path: str, value: Any) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def release_all(self, voice: Voice) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class VirtualEngine(AudioEngine):
    """A minimal engine capturing calls for tests and demos.

    Records tuples like (type, voice, arg, value). Types: 'attack', 'release',
    'param', 'release_all'. `start_ok` decides the start outcome and
    `start_delay` makes start() suspend like a first-gesture audio unlock.
    """

    def __init__(self, start_ok: bool = True, start_delay: float = 0.0) -> None:
        self.events: List[Tuple[str, Voice, Any, Any]] = []
        self.start_ok = start_ok
        self.start_delay = start_delay
        self.start_calls = 0
        self.running = False

    async def start(self) -> bool:
        self.start_calls += 1
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        self.running = bool(self.start_ok)
        return self.running

    def attack(self, voice: Voice, note_name: str, gain: float) -> None:
        self.events.append(("attack", voice, note_name, gain))

    def release(self, voice: Voice, note_name: str) -> None:
        self.events.append(("release", voice, note_name, None))

    def set_parameter(self, voice: Voice, path: str, value: Any) -> None:
        self.events.append(("param", voice, path, value))

    def release_all(self, voice: Voice) -> None:
        self.events.append(("release_all", voice, None, None))

    # --- helpers for assertions ---
    def of_type(self, kind: str) -> List[Tuple[str, Voice, Any, Any]]:
        return [e for e in self.events if e[0] == kind]

    def last_param(self, voice: Voice, path: str) -> Any:
        for e in reversed(self.events):
            if e[0] == "param" and e[1] is voice and e[2] == path:
                return e[3]
        return None
