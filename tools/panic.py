from __future__ import annotations

import argparse
import asyncio

from jamlink.engine import VOICES
from jamlink.midi_out import MidoEngine


def main():
    ap = argparse.ArgumentParser(description="Send All Notes Off / All Sound Off on both voice channels")
    ap.add_argument("--port", required=True, help="Substring to match MIDI port of the rendering synth")
    args = ap.parse_args()
    engine = MidoEngine(args.port)
    if not asyncio.run(engine.start()):
        raise SystemExit(f"no MIDI output matching {args.port!r}")
    for voice in VOICES:
        engine.release_all(voice)
    print("panic sent (CC64/120/123 on channels 0 and 1)")


if __name__ == "__main__":
    main()
