from __future__ import annotations

from typing import Optional, Sequence, Union

import mido

from jamlink.events import CC_CHANNELS, ControlChange, DecodeError, NoteOff, NoteOn, Origin, SynthesisEvent


NOTE_OFF = 0x80
NOTE_ON = 0x90
CONTROL_CHANGE = 0xB0

_HANDLED = (NOTE_OFF, NOTE_ON, CONTROL_CHANGE)


def decode(raw: Union[bytes, bytearray, Sequence[int]]) -> Optional[SynthesisEvent]:
    """Decode a raw 3-byte [status, data1, data2] message into a local event.

    Only the high nibble of status is considered (any MIDI channel).
    Raises DecodeError on wrong length or invalid bytes; returns None for
    statuses and controllers this instrument does not react to.
    """
    data = list(raw)
    if len(data) != 3:
        raise DecodeError(f"expected 3 bytes, got {len(data)}")
    status = data[0]
    if not isinstance(status, int) or (status & 0xF0) not in _HANDLED:
        return None
    try:
        msg = mido.Message.from_bytes(data)
    except (ValueError, TypeError) as e:
        raise DecodeError(str(e)) from e
    return decode_message(msg)


def decode_message(msg: "mido.Message") -> Optional[SynthesisEvent]:
    """Same decoding rule for a message delivered by a mido input port."""
    t = getattr(msg, "type", None)
    if t == "note_on":
        # Velocity-zero note-on is a note-off by MIDI convention
        if msg.velocity > 0:
            return NoteOn(int(msg.note), int(msg.velocity), origin=Origin.LOCAL)
        return NoteOff(int(msg.note), origin=Origin.LOCAL)
    if t == "note_off":
        return NoteOff(int(msg.note), origin=Origin.LOCAL)
    if t == "control_change":
        channel = CC_CHANNELS.get(int(msg.control))
        if channel is None:
            return None
        return ControlChange(channel, int(msg.value), controller=int(msg.control), origin=Origin.LOCAL)
    return None
