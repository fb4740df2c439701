from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple

import mido

from jamlink.active_notes import note_name_to_midi
from jamlink.engine import AudioEngine, Voice
from jamlink.param_map import DEFAULT_CONSTANTS, MappingConstants, OscillatorBlend


VOICE_CHANNELS: Dict[Voice, int] = {Voice.LEFT: 0, Voice.RIGHT: 1}


class DummyOutput:
    def send(self, *_args, **_kwargs):
        pass


class DummyInput:
    def close(self):
        pass


def _path_table(constants: MappingConstants) -> Dict[str, Tuple[int, float, float, str]]:
    # path -> (cc, lo, hi, curve); paths not listed have no CC on the receiving synth
    return {
        "filter.frequency": (74, constants.cutoff_min_hz, constants.cutoff_max_hz, "log"),
        "filter.Q": (71, 0.0, 127 / constants.resonance_divisor, "linear"),
        "drive.gain": (76, 0.0, 127 * constants.drive_gain_factor, "linear"),
        "oscillator.blend": (77, 0.0, 127.0, "linear"),
        "vibrato.depth": (78, 0.0, 1.0, "linear"),
    }


def scale_to_cc(value: float, lo: float, hi: float, curve: str = "linear") -> int:
    if hi <= lo:
        return 0
    v = max(lo, min(hi, float(value)))
    if curve == "log" and lo > 0:
        frac = math.log(v / lo) / math.log(hi / lo)
    else:
        frac = (v - lo) / (hi - lo)
    return max(0, min(127, int(round(frac * 127))))


class MidoEngine(AudioEngine):
    """Renders through an external MIDI synth: one MIDI channel per voice.

    Synthesis parameters are scaled back into 0..127 and sent as CCs.
    """

    def __init__(self, port_filter: Optional[str] = None, constants: MappingConstants = DEFAULT_CONSTANTS) -> None:
        self.port_filter = port_filter
        self.constants = constants
        self.out = None
        self._table = _path_table(constants)
        self._last_cc: Dict[Tuple[int, int], int] = {}

    async def start(self) -> bool:
        if self.out is not None:
            return True
        out = open_mido_output(self.port_filter)
        if isinstance(out, DummyOutput) and self.port_filter:
            print(f"[midi-out] no output port matching {self.port_filter!r}", flush=True)
            return False
        self.out = out
        return True

    def _send(self, msg: "mido.Message") -> None:
        if self.out is not None:
            self.out.send(msg)

    def attack(self, voice: Voice, note_name: str, gain: float) -> None:
        pitch = note_name_to_midi(note_name)
        if pitch is None:
            raise ValueError(f"invalid note name {note_name!r}")
        vel = max(1, min(127, int(round(float(gain) * 127))))
        self._send(mido.Message("note_on", note=pitch, velocity=vel, channel=VOICE_CHANNELS[voice]))

    def release(self, voice: Voice, note_name: str) -> None:
        pitch = note_name_to_midi(note_name)
        if pitch is None:
            raise ValueError(f"invalid note name {note_name!r}")
        self._send(mido.Message("note_off", note=pitch, velocity=0, channel=VOICE_CHANNELS[voice]))

    def set_parameter(self, voice: Voice, path: str, value: Any) -> None:
        ent = self._table.get(path)
        if ent is None:
            return
        cc, lo, hi, curve = ent
        if isinstance(value, OscillatorBlend):
            # Recover the raw mix the blend was derived from
            raw = value.spread if value.kind == "sawtooth" else value.spread + self.constants.fat_spread_offset
            val = max(0, min(127, int(raw)))
        else:
            val = scale_to_cc(value, lo, hi, curve)
        ch = VOICE_CHANNELS[voice]
        self._last_cc[(ch, cc)] = val
        self._send(mido.Message("control_change", control=cc, value=val, channel=ch))

    def release_all(self, voice: Voice) -> None:
        ch = VOICE_CHANNELS[voice]
        # Sustain off, All Sound Off (120), All Notes Off (123)
        for control in (64, 120, 123):
            self._send(mido.Message("control_change", control=control, value=0, channel=ch))

    def get_cc_snapshot(self) -> Dict[int, Dict[int, int]]:
        out: Dict[int, Dict[int, int]] = {}
        for (ch, ctrl), val in self._last_cc.items():
            out.setdefault(int(ch), {})[int(ctrl)] = int(val)
        return out


def open_mido_output(name_filter: Optional[str] = None):
    """Open a Mido output port with safe fallbacks.

    - If the system MIDI stack is inaccessible (no backend, sandboxed CI),
      return a DummyOutput exposing `.send()`.
    - If a specific port is requested but not found, also fall back to a
      dummy rather than crashing in headless environments.
    """
    try:
        names = mido.get_output_names()
    except Exception:
        return DummyOutput()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        return DummyOutput()
    try:
        return mido.open_output(names[0])
    except Exception:
        return DummyOutput()


def open_mido_input(name_filter: Optional[str] = None, callback=None):
    """Open a Mido input port with safe fallbacks.

    Returns a DummyInput with `.close()` when system MIDI is unavailable or
    no port matches.
    """
    try:
        names = mido.get_input_names()
    except Exception:
        return DummyInput()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        return DummyInput()
    try:
        return mido.open_input(names[0], callback=callback)
    except Exception:
        return DummyInput()
