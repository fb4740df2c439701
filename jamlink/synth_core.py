from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, Tuple

from jamlink.active_notes import ActiveNoteRegistry
from jamlink.engine import VOICES, AudioEngine, EngineNotReady, Voice
from jamlink.events import (
    CC_CHANNELS,
    ControlChange,
    ControlChannel,
    DecodeError,
    NoteOff,
    NoteOn,
    Origin,
    SynthesisEvent,
    from_wire,
)
from jamlink.midi_decoder import decode
from jamlink.param_map import CHANNEL_PATHS, DEFAULT_CONSTANTS, MappingConstants, ParameterSet, derive, slider_to_raw


StatusHandler = Callable[[str, bool], None]


class Transport:
    """Outbound side of the realtime relay as seen by the core."""

    connected: bool = False

    def send(self, event: SynthesisEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class EffectBinding:
    """Per-session map of control channel -> (voice, path) handles it drives.

    Owned by the core so no effect state is attached to engine voice objects.
    """

    def __init__(self, voices: Tuple[Voice, ...] = VOICES) -> None:
        self.handles: Dict[ControlChannel, Tuple[Tuple[Voice, str], ...]] = {
            ch: tuple((v, p) for v in voices for p in CHANNEL_PATHS[ch]) for ch in ControlChannel
        }

    def handles_for(self, channel: ControlChannel) -> Tuple[Tuple[Voice, str], ...]:
        return self.handles[channel]


class SynthCore:
    """Control plane for one session participant.

    Owns the active-note registry, the parameter set and the effect binding;
    drives the rendering engine and relays local events through the
    transport. Remote-origin events are applied locally but never relayed.
    """

    def __init__(
        self,
        engine: AudioEngine,
        transport: Optional[Transport] = None,
        constants: MappingConstants = DEFAULT_CONSTANTS,
        on_status: Optional[StatusHandler] = None,
        stereo_detune: bool = True,
    ) -> None:
        self.engine = engine
        self.transport = transport
        self.constants = constants
        self.on_status = on_status
        self.notes = ActiveNoteRegistry()
        self.params = ParameterSet()
        self.binding = EffectBinding()
        # Left voice is slightly detuned for a binaural widening effect
        self.detune: Dict[Voice, float] = {
            Voice.LEFT: constants.stereo_detune if stereo_detune else 0.0,
            Voice.RIGHT: 0.0,
        }
        self.engine_ready = False
        self._start_task: Optional["asyncio.Future[bool]"] = None
        self.status = ""
        self.metrics: Dict[str, int] = {
            "notes_attacked": 0,
            "duplicate_attacks": 0,
            "stray_releases": 0,
            "cc_applied": 0,
            "events_sent": 0,
            "echo_suppressed": 0,
            "decode_errors": 0,
            "engine_not_ready": 0,
        }

    # --- Status / introspection ---
    def set_status(self, message: str, is_error: bool = False) -> None:
        self.status = message
        print(f"[core] {'error: ' if is_error else ''}{message}", flush=True)
        if self.on_status:
            self.on_status(message, is_error)

    def get_metrics(self) -> Dict[str, int]:
        return dict(self.metrics)

    def get_state(self) -> Dict[str, Any]:
        return {
            "engineReady": self.engine_ready,
            "activeNotes": self.notes.snapshot(),
            "params": self.params.snapshot(),
            "status": self.status,
        }

    # --- Engine readiness ---
    async def ensure_engine(self) -> bool:
        """Start the engine once. Concurrent callers share the pending start;
        a failed start can be retried by a later call."""
        if self.engine_ready:
            return True
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start_engine())
        return await asyncio.shield(self._start_task)

    async def _start_engine(self) -> bool:
        self.set_status("Starting audio...")
        try:
            ok = bool(await self.engine.start())
        except Exception as e:
            print(f"[core] engine start error: {e}", flush=True)
            ok = False
        finally:
            self._start_task = None
        if not ok:
            self.set_status("Audio failed to start. Please try again.", is_error=True)
            return False
        self.engine_ready = True
        self._push_all_params()
        # Clear phantom voices left over from a previous session
        self.all_notes_off()
        self.set_status("Synth ready! You can play now.")
        return True

    def _require_engine(self) -> None:
        if not self.engine_ready:
            raise EngineNotReady("audio engine not started")

    def _engine_call(self, method: str, *args: Any) -> bool:
        try:
            self._require_engine()
            getattr(self.engine, method)(*args)
            return True
        except EngineNotReady:
            return False
        except Exception as e:
            print(f"[core] engine {method}{args} failed: {e}", flush=True)
            return False

    def _push_all_params(self) -> None:
        for ch in ControlChannel:
            self._push_channel(ch)

    def _push_channel(self, channel: ControlChannel) -> None:
        derived = {v: derive(channel, self.params, self.constants, self.detune[v]) for v in VOICES}
        for voice, path in self.binding.handles_for(channel):
            self._engine_call("set_parameter", voice, path, derived[voice][path])

    # --- Relay ---
    def _emit(self, event: SynthesisEvent) -> bool:
        if event.origin is Origin.REMOTE:
            self.metrics["echo_suppressed"] += 1
            return False
        if event.origin is Origin.LOCAL:
            t = self.transport
            if t is None or not t.connected:
                return False
            try:
                t.send(event)
            except Exception as e:
                print(f"[core] send failed: {e}", flush=True)
                return False
            self.metrics["events_sent"] += 1
            return True
        raise ValueError(f"unknown origin {event.origin!r}")

    # --- Operations ---
    async def note_on(self, note: int, velocity: int, origin: Origin = Origin.LOCAL) -> bool:
        if not await self.ensure_engine():
            self.metrics["engine_not_ready"] += 1
            return False
        accepted, rec = self.notes.attack(note, velocity)
        if not accepted:
            self.metrics["duplicate_attacks"] += 1
            return False
        self.metrics["notes_attacked"] += 1
        gain = velocity / 127
        for voice in VOICES:
            self._engine_call("attack", voice, rec.note_name, gain)
        self._emit(NoteOn(note, velocity, origin=origin))
        return True

    def note_off(self, note: int, origin: Origin = Origin.LOCAL) -> bool:
        rec = self.notes.release(note)
        if rec is None:
            self.metrics["stray_releases"] += 1
            return False
        # Stored name, not re-derived from the number
        for voice in VOICES:
            self._engine_call("release", voice, rec.note_name)
        self._emit(NoteOff(note, origin=origin))
        return True

    def control_change(
        self,
        channel: ControlChannel,
        value: int,
        origin: Origin = Origin.LOCAL,
        controller: Optional[int] = None,
    ) -> None:
        self.params.update(channel, value)
        self.metrics["cc_applied"] += 1
        self._push_channel(channel)
        self._emit(ControlChange(channel, self.params[channel], controller=controller, origin=origin))

    def control_change_cc(self, cc: int, value: int, origin: Origin = Origin.LOCAL) -> bool:
        channel = CC_CHANNELS.get(cc)
        if channel is None:
            return False
        self.control_change(channel, value, origin=origin, controller=cc)
        return True

    def all_notes_off(self, origin: Origin = Origin.LOCAL) -> int:
        """Release every note 0..127, then silence both voices outright."""
        released = 0
        for note in range(128):
            # Held notes only; the sweep is not a stray release
            if note in self.notes and self.note_off(note, origin=origin):
                released += 1
        self.notes.clear()
        for voice in VOICES:
            self._engine_call("release_all", voice)
        return released

    async def dispatch(self, event: SynthesisEvent) -> bool:
        if isinstance(event, NoteOn):
            return await self.note_on(event.note, event.velocity, origin=event.origin)
        if isinstance(event, NoteOff):
            return self.note_off(event.note, origin=event.origin)
        if isinstance(event, ControlChange):
            self.control_change(event.channel, event.value, origin=event.origin, controller=event.controller)
            return True
        raise TypeError(f"not a synthesis event: {event!r}")

    # --- Input boundaries: never raise ---
    async def handle_midi_bytes(self, raw: Any) -> bool:
        try:
            event = decode(raw)
        except DecodeError as e:
            self.metrics["decode_errors"] += 1
            print(f"[midi-in] dropped malformed message {raw!r}: {e}", flush=True)
            return False
        if event is None:
            return False
        try:
            return await self.dispatch(event)
        except Exception as e:
            print(f"[core] error handling {event}: {e}", flush=True)
            return False

    async def handle_remote(self, payload: Any) -> bool:
        try:
            event = from_wire(payload)
        except DecodeError as e:
            self.metrics["decode_errors"] += 1
            print(f"[core] dropped malformed relay payload {payload!r}: {e}", flush=True)
            return False
        if event is None:
            return False
        try:
            return await self.dispatch(event)
        except Exception as e:
            print(f"[core] error handling remote {event}: {e}", flush=True)
            return False

    async def handle_slider(self, channel: ControlChannel, fraction: float) -> bool:
        try:
            await self.ensure_engine()
            self.control_change(channel, slider_to_raw(fraction))
            return True
        except Exception as e:
            print(f"[core] error handling slider {channel}: {e}", flush=True)
            return False
