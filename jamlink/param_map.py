from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from jamlink.events import ControlChannel


@dataclass(frozen=True)
class MappingConstants:
    """Tuning constants for the CC -> synthesis mapping.

    These were tuned by ear and differ between revisions of the instrument,
    so they are injectable rather than hard-coded in the mapping functions.
    """

    cutoff_min_hz: float = 20.0
    cutoff_max_hz: float = 12000.0
    release_base: float = 7.5
    release_divisor: float = 64.0
    resonance_divisor: float = 3.5
    drive_gain_factor: float = 0.09
    blend_branch: int = 64
    unison_divisor: int = 16
    fat_count: int = 4
    fat_spread_offset: int = 60
    stereo_detune: float = -4.0

    @property
    def cutoff_base(self) -> float:
        # Per-step growth so that 0 -> min and 127 -> max
        return (self.cutoff_max_hz / self.cutoff_min_hz) ** (1.0 / 127.0)

    @classmethod
    def legacy(cls) -> "MappingConstants":
        """Constants of the earlier revision: literal 1.0366329 base (~1.9 kHz top)."""
        return cls(cutoff_max_hz=20.0 * 1.0366329 ** 127)


DEFAULT_CONSTANTS = MappingConstants()


@dataclass(frozen=True)
class OscillatorBlend:
    kind: str  # "sawtooth" (narrow unison) or "fatsawtooth"
    count: int
    spread: int
    detune: float = 0.0


def _raw(v: int) -> int:
    return max(0, min(127, int(v)))


def cutoff_hz(v: int, constants: MappingConstants = DEFAULT_CONSTANTS) -> float:
    return constants.cutoff_min_hz * constants.cutoff_base ** _raw(v)


def filter_release(v: int, constants: MappingConstants = DEFAULT_CONSTANTS) -> float:
    return constants.release_base + _raw(v) / constants.release_divisor


def resonance_q(v: int, constants: MappingConstants = DEFAULT_CONSTANTS) -> float:
    return _raw(v) / constants.resonance_divisor


def drive_gain(v: int, constants: MappingConstants = DEFAULT_CONSTANTS) -> float:
    return _raw(v) * constants.drive_gain_factor


def drive_mix(v: int) -> float:
    """Crossfade ratio between the clean and the soft-clipped path."""
    return min(_raw(v) / 127.0, 1.0)


def oscillator_blend(mix: int, detune: float = 0.0, constants: MappingConstants = DEFAULT_CONSTANTS) -> OscillatorBlend:
    """Pick the oscillator timbre for a mix value.

    The jump at the branch point is a timbre category switch from a narrow
    unison saw to a fixed-count fat saw.
    """
    m = _raw(mix)
    if m < constants.blend_branch:
        return OscillatorBlend("sawtooth", m // constants.unison_divisor, m, detune)
    return OscillatorBlend("fatsawtooth", constants.fat_count, m - constants.fat_spread_offset, detune)


def vibrato_depth(v: int) -> float:
    return _raw(v) / 127.0


def slider_to_raw(fraction: float) -> int:
    """Map a 0.0..1.0 UI slider position onto the raw controller range."""
    f = max(0.0, min(1.0, float(fraction)))
    return int(math.floor(f * 127))


# Synthesis parameter paths each channel drives on the rendering engine
CHANNEL_PATHS: Dict[ControlChannel, Tuple[str, ...]] = {
    ControlChannel.CUTOFF: ("filter.frequency", "filter.envelope.base_frequency", "filter.envelope.release"),
    ControlChannel.RESONANCE: ("filter.Q",),
    ControlChannel.DRIVE: ("drive.gain", "drive.mix"),
    ControlChannel.OSCILLATOR_MIX: ("oscillator.blend",),
    ControlChannel.VIBRATO: ("vibrato.depth",),
}


DEFAULT_RAW: Dict[ControlChannel, int] = {
    ControlChannel.CUTOFF: 127,
    ControlChannel.RESONANCE: 0,
    ControlChannel.DRIVE: 0,
    ControlChannel.OSCILLATOR_MIX: 1,
    ControlChannel.VIBRATO: 0,
}


class ParameterSet:
    """Current raw 0..127 value for every control channel."""

    def __init__(self, initial: Dict[ControlChannel, int] | None = None) -> None:
        self._values: Dict[ControlChannel, int] = dict(DEFAULT_RAW)
        for ch, v in (initial or {}).items():
            self.update(ch, v)

    def __getitem__(self, channel: ControlChannel) -> int:
        return self._values[channel]

    def update(self, channel: ControlChannel, value: int) -> bool:
        """Replace one channel's scalar. Returns True if the value changed."""
        if not isinstance(channel, ControlChannel):
            raise TypeError(f"not a control channel: {channel!r}")
        v = _raw(value)
        changed = self._values[channel] != v
        self._values[channel] = v
        return changed

    def snapshot(self) -> Dict[str, int]:
        return {ch.value: v for ch, v in self._values.items()}


def derive(channel: ControlChannel, params: ParameterSet, constants: MappingConstants = DEFAULT_CONSTANTS, detune: float = 0.0) -> Dict[str, Any]:
    """Synthesis values (path -> value) driven by one channel."""
    v = params[channel]
    if channel is ControlChannel.CUTOFF:
        hz = cutoff_hz(v, constants)
        return {
            "filter.frequency": hz,
            "filter.envelope.base_frequency": hz,
            "filter.envelope.release": filter_release(v, constants),
        }
    if channel is ControlChannel.RESONANCE:
        return {"filter.Q": resonance_q(v, constants)}
    if channel is ControlChannel.DRIVE:
        return {"drive.gain": drive_gain(v, constants), "drive.mix": drive_mix(v)}
    if channel is ControlChannel.OSCILLATOR_MIX:
        return {"oscillator.blend": oscillator_blend(v, detune, constants)}
    if channel is ControlChannel.VIBRATO:
        return {"vibrato.depth": vibrato_depth(v)}
    raise ValueError(f"unhandled channel {channel!r}")


def derive_all(params: ParameterSet, constants: MappingConstants = DEFAULT_CONSTANTS, detune: float = 0.0) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for ch in ControlChannel:
        out.update(derive(ch, params, constants, detune))
    return out
