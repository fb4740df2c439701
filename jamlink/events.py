from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Union


class DecodeError(ValueError):
    """Malformed raw MIDI bytes or wire payload. Logged and dropped by callers."""


class ControlChannel(Enum):
    CUTOFF = "cutoff"
    RESONANCE = "resonance"
    DRIVE = "drive"
    OSCILLATOR_MIX = "oscillatorMix"
    VIBRATO = "vibrato"

    @classmethod
    def from_name(cls, name: str) -> Optional["ControlChannel"]:
        for ch in cls:
            if ch.value == name:
                return ch
        return None


class Origin(Enum):
    # Never transmitted; decides whether an event is relayed.
    LOCAL = "local"
    REMOTE = "remote"


# Physical CC number -> logical channel. CC1 (mod wheel) and CC74 both drive cutoff.
CC_CHANNELS: Dict[int, ControlChannel] = {
    1: ControlChannel.CUTOFF,
    74: ControlChannel.CUTOFF,
    71: ControlChannel.RESONANCE,
    76: ControlChannel.DRIVE,
    77: ControlChannel.OSCILLATOR_MIX,
    78: ControlChannel.VIBRATO,
}


@dataclass(frozen=True)
class NoteOn:
    note: int
    velocity: int
    origin: Origin = Origin.LOCAL


@dataclass(frozen=True)
class NoteOff:
    note: int
    origin: Origin = Origin.LOCAL


@dataclass(frozen=True)
class ControlChange:
    channel: ControlChannel
    value: int
    controller: Optional[int] = None
    origin: Origin = Origin.LOCAL


SynthesisEvent = Union[NoteOn, NoteOff, ControlChange]


def as_remote(event: SynthesisEvent) -> SynthesisEvent:
    return replace(event, origin=Origin.REMOTE)


def to_wire(event: SynthesisEvent) -> Dict[str, Any]:
    """Encode an event as the JSON-shaped `midi` payload. Origin is not sent."""
    if isinstance(event, NoteOn):
        return {"type": "noteon", "note": int(event.note), "velocity": int(event.velocity)}
    if isinstance(event, NoteOff):
        return {"type": "noteoff", "note": int(event.note)}
    if isinstance(event, ControlChange):
        if event.controller is not None:
            return {"type": "cc", "cc": int(event.controller), "value": int(event.value)}
        return {"type": "cc", "control": event.channel.value, "value": int(event.value)}
    raise TypeError(f"not a synthesis event: {event!r}")


def _field_7bit(obj: Dict[str, Any], key: str) -> int:
    v = obj.get(key)
    # bool is an int subclass; reject it explicitly
    if not isinstance(v, int) or isinstance(v, bool):
        raise DecodeError(f"{key}: required integer")
    if not (0 <= v <= 127):
        raise DecodeError(f"{key}: out of range 0..127 ({v})")
    return v


def from_wire(obj: Any) -> Optional[SynthesisEvent]:
    """Decode a relayed `midi` payload into a remote-tagged event.

    Returns None for a well-formed control change that maps to no channel.
    Raises DecodeError for anything malformed.
    """
    if not isinstance(obj, dict):
        raise DecodeError("payload must be an object")
    t = obj.get("type")
    if t == "noteon":
        return NoteOn(_field_7bit(obj, "note"), _field_7bit(obj, "velocity"), origin=Origin.REMOTE)
    if t == "noteoff":
        return NoteOff(_field_7bit(obj, "note"), origin=Origin.REMOTE)
    if t == "cc":
        value = _field_7bit(obj, "value")
        if "cc" in obj:
            cc = _field_7bit(obj, "cc")
            channel = CC_CHANNELS.get(cc)
            if channel is None:
                return None
            return ControlChange(channel, value, controller=cc, origin=Origin.REMOTE)
        name = obj.get("control")
        if not isinstance(name, str):
            raise DecodeError("cc: requires 'cc' number or 'control' name")
        channel = ControlChannel.from_name(name)
        if channel is None:
            return None
        return ControlChange(channel, value, origin=Origin.REMOTE)
    raise DecodeError(f"unknown event type: {t!r}")
