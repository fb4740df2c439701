from __future__ import annotations

import argparse
import asyncio
import json


async def run(url: str, cmd: str, args: argparse.Namespace):
    import websockets

    async with websockets.connect(url) as ws:
        hello = json.loads(await ws.recv())
        print(hello)
        await ws.send(json.dumps({"type": "joinRoom", "payload": {"roomId": args.room}}))
        if cmd == "note":
            note, vel = int(args.note), int(args.velocity)
            await ws.send(json.dumps({"type": "midi", "payload": {"type": "noteon", "note": note, "velocity": vel}}))
            await asyncio.sleep(float(args.hold))
            await ws.send(json.dumps({"type": "midi", "payload": {"type": "noteoff", "note": note}}))
        elif cmd == "cc":
            if args.control:
                event = {"type": "cc", "control": args.control, "value": int(args.value)}
            else:
                event = {"type": "cc", "cc": int(args.cc), "value": int(args.value)}
            await ws.send(json.dumps({"type": "midi", "payload": event}))
        elif cmd == "listen":
            pass
        # Print replies (roomJoined/roomUpdate/midi from the peer)
        deadline = None if cmd == "listen" else 2.0
        while True:
            try:
                msg = await asyncio.wait_for(ws.recv(), timeout=deadline)
                print(msg)
            except asyncio.TimeoutError:
                break


def main():
    ap = argparse.ArgumentParser(description="Simple WS controller for the jam relay")
    ap.add_argument("--url", default="ws://127.0.0.1:3000")
    ap.add_argument("--room", default="jam1")
    sub = ap.add_subparsers(dest="cmd", required=True)
    p_note = sub.add_parser("note"); p_note.add_argument("--note", required=True); p_note.add_argument("--velocity", default=100); p_note.add_argument("--hold", default=0.5)
    p_cc = sub.add_parser("cc"); p_cc.add_argument("--cc"); p_cc.add_argument("--control"); p_cc.add_argument("--value", required=True)
    sub.add_parser("listen")
    args = ap.parse_args()
    if args.cmd == "cc" and not (args.cc or args.control):
        ap.error("cc requires --cc or --control")
    asyncio.run(run(args.url, args.cmd, args))


if __name__ == "__main__":
    main()
