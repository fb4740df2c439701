from __future__ import annotations

import argparse
import asyncio
import os
import signal
from typing import Callable, Optional, Set

from jamlink.client import JamClient
from jamlink.midi_out import MidoEngine, open_mido_input
from jamlink.param_map import DEFAULT_CONSTANTS, MappingConstants
from jamlink.synth_core import SynthCore


def midi_forwarder(loop: asyncio.AbstractEventLoop, core: SynthCore, pending: Set["asyncio.Task[bool]"]) -> Callable:
    """Build a mido input callback that hands raw bytes to `core` on `loop`.

    mido calls back on its own thread; the core only runs on the loop. Tasks
    are held in `pending` until they finish.
    """

    def schedule(raw):
        task = asyncio.ensure_future(core.handle_midi_bytes(raw))
        pending.add(task)
        task.add_done_callback(pending.discard)

    def on_input(msg):
        try:
            if getattr(msg, "type", None) not in ("note_on", "note_off", "control_change"):
                return
            raw = msg.bytes()
        except Exception as e:
            print(f"[midi-in] unreadable message {msg!r}: {e}", flush=True)
            return
        loop.call_soon_threadsafe(schedule, raw)

    return on_input


async def run(url: str, room: Optional[str], midi_in: Optional[str], midi_out: Optional[str], constants: MappingConstants, detune: bool = True):
    loop = asyncio.get_running_loop()
    engine = MidoEngine(midi_out, constants=constants)
    core = SynthCore(engine, constants=constants, stereo_detune=detune)
    client = JamClient(url, core)
    await client.connect()
    if room:
        client.join(room)
    await core.ensure_engine()

    pending: Set["asyncio.Task[bool]"] = set()
    inp = open_mido_input(midi_in, callback=midi_forwarder(loop, core, pending))

    stop = asyncio.Event()

    def shutdown(*_):
        core.all_notes_off()
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown)
        except NotImplementedError:
            pass

    waiters = [asyncio.create_task(stop.wait()), asyncio.create_task(client.closed.wait())]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for w in waiters:
            w.cancel()
        inp.close()
        # Queued note-offs from the sweep are flushed before the socket closes
        await client.close()
        print("[jam] bye", flush=True)


def main():
    ap = argparse.ArgumentParser(description="Jam with a remote partner: MIDI in -> local synth + relay")
    ap.add_argument("--url", default=os.environ.get("JAMLINK_URL", "ws://127.0.0.1:3000"))
    ap.add_argument("--room", help="Room to join on connect (e.g., 'jam1')")
    ap.add_argument("--midi-in", help="Substring to match the MIDI input port")
    ap.add_argument("--midi-out", help="Substring to match the MIDI port of the rendering synth")
    ap.add_argument("--legacy-cutoff", action="store_true", help="Use the earlier 1.0366329 cutoff curve (~1.9 kHz top)")
    ap.add_argument("--no-detune", action="store_true", help="Disable the left-voice stereo detune")
    args = ap.parse_args()

    constants = MappingConstants.legacy() if args.legacy_cutoff else DEFAULT_CONSTANTS
    asyncio.run(run(args.url, args.room, args.midi_in, args.midi_out, constants, detune=not args.no_detune))


if __name__ == "__main__":
    main()
