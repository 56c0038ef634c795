"""
CLI client for the GeoSync view sync server.

Supports:
- drive:   join as source; read "lat lng zoom" lines from stdin and emit them
           through the client throttle
- follow:  join as follower; print every applied view with its latency;
           type "resync" to request the stored view again

WebSocket protocol (`SyncConsumer`, /ws/sync/):
- Server sends {"type":"connected","connection_id":...} on connect
- Client sends {"type":"join","session_id":"ABCD1234","role":"source"|"follower"}
- Server replies join_ok / join_rejected, then presence, view_sync, source_lost
- Source sends {"type":"view_update","latitude":..,"longitude":..,"zoom":..}
- Any role may send {"type":"resync_request"}

Reconnects up to --reconnect-attempts times, re-joining with the participant
token from the last join_ok.
"""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import sys
from typing import Any, Dict, Optional

from geosync import AsyncioFrameScheduler, Camera, HeadlessSurface, Participant, ViewState, new_session_id

logger = logging.getLogger("ws_client")

FLUSH_TIMEOUT = 5.0


def _rstrip_slash(s: str) -> str:
    return s[:-1] if s.endswith("/") else s


def _ws_sync_url(ws_base: str) -> str:
    return f"{_rstrip_slash(ws_base)}/ws/sync/"


def _parse_camera_line(line: str) -> Optional[Camera]:
    parts = line.replace(",", " ").split()
    if len(parts) != 3:
        return None
    try:
        lat, lng, zoom = (float(p) for p in parts)
    except ValueError:
        return None
    return Camera(latitude=lat, longitude=lng, zoom=zoom)


async def _stdin_line() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


def _print_event(participant: Participant, msg_type: str, msg: Dict[str, Any]) -> None:
    if msg_type == "join_ok":
        sys.stderr.write(f"[joined {participant.session_id} as {participant.role}; presence={participant.presence}]\n")
    elif msg_type == "join_rejected":
        sys.stderr.write(f"[join rejected: {participant.join_error}]\n")
    elif msg_type == "presence":
        sys.stderr.write(f"[presence {participant.presence}]\n")
    elif msg_type == "source_lost":
        sys.stderr.write("[source disconnected; map frozen at last position]\n")
    elif msg_type == "role_revoked":
        sys.stderr.write("[role taken over by a newer connection]\n")
    sys.stderr.flush()


async def run_session(
    *,
    ws_base: str,
    origin: Optional[str],
    session_id: str,
    role: str,
    reconnect_attempts: int,
    reconnect_delay: float,
    refresh_hz: float,
) -> int:
    try:
        import websockets  # type: ignore
    except ImportError:
        print("Missing dependency: websockets. Install with: pip install websockets", file=sys.stderr)
        return 2

    ws_url = _ws_sync_url(ws_base)
    extra_headers = [("Origin", origin)] if origin else []

    outgoing: asyncio.Queue = asyncio.Queue()
    surface = HeadlessSurface()
    joined = asyncio.Event()

    def _applied(view: ViewState) -> None:
        camera = view.camera
        latency = participant.latency_ms
        sys.stdout.write(
            f"{camera.latitude:.6f} {camera.longitude:.6f} {camera.zoom:.1f}"
            + (f"  ({latency}ms)" if latency is not None else "")
            + "\n"
        )
        sys.stdout.flush()

    def _on_event(msg_type: str, msg: Dict[str, Any]) -> None:
        if msg_type == "join_ok":
            joined.set()
        _print_event(participant, msg_type, msg)

    participant = Participant(
        session_id,
        role,
        outgoing.put_nowait,
        scheduler=AsyncioFrameScheduler(refresh_hz=refresh_hz),
        surface=surface,
        listener=_on_event,
        on_applied=_applied,
    )

    async def _connect():
        kwargs: Dict[str, Any] = {}
        if extra_headers:
            sig = inspect.signature(websockets.connect)
            if "additional_headers" in sig.parameters:
                kwargs["additional_headers"] = extra_headers
            elif "extra_headers" in sig.parameters:
                kwargs["extra_headers"] = extra_headers
        return await websockets.connect(ws_url, **kwargs)

    async def _reader(ws) -> None:
        async for raw in ws:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Non-JSON frame ignored")
                continue
            if isinstance(msg, dict):
                participant.handle(msg)

    async def _writer(ws) -> None:
        while True:
            msg = await outgoing.get()
            await ws.send(json.dumps(msg, separators=(",", ":"), ensure_ascii=False))
            outgoing.task_done()

    async def _console() -> None:
        # Moves read before the first join_ok would have nowhere to go.
        await joined.wait()
        while True:
            line = await _stdin_line()
            if not line:
                return
            line = line.strip()
            if not line:
                continue
            if line.lower() == "resync":
                participant.request_resync()
                continue
            camera = _parse_camera_line(line)
            if camera is None:
                sys.stderr.write("expected: <lat> <lng> <zoom> | resync\n")
                continue
            if participant.role == "source":
                surface.move(camera)

    console = asyncio.create_task(_console())
    attempts = 0
    try:
        while participant.should_reconnect:
            try:
                ws = await _connect()
            except (OSError, websockets.exceptions.WebSocketException) as e:
                attempts += 1
                if attempts > reconnect_attempts:
                    sys.stderr.write(f"[giving up after {reconnect_attempts} reconnect attempts: {e}]\n")
                    return 1
                sys.stderr.write(f"[connection failed ({e}); retrying in {reconnect_delay:.0f}s]\n")
                await asyncio.sleep(reconnect_delay)
                continue

            attempts = 0
            # Frames queued for the dead socket would precede our join.
            while not outgoing.empty():
                outgoing.get_nowait()
                outgoing.task_done()
            async with ws:
                participant.on_open()
                reader = asyncio.create_task(_reader(ws))
                writer = asyncio.create_task(_writer(ws))
                waiters = {reader, writer}
                if participant.role == "source" and not console.done():
                    waiters.add(console)
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                if console in done and writer not in done:
                    # stdin closed: let the writer flush what was already emitted
                    try:
                        await asyncio.wait_for(outgoing.join(), timeout=FLUSH_TIMEOUT)
                    except asyncio.TimeoutError:
                        logger.warning("Exiting with %d unsent frames", outgoing.qsize())
                for task in (reader, writer):
                    if task not in done:
                        task.cancel()
                await asyncio.gather(reader, writer, return_exceptions=True)
            participant.on_close()
            if console.done() and participant.role == "source":
                return 0
            if participant.should_reconnect:
                sys.stderr.write("[connection lost; reconnecting...]\n")
                await asyncio.sleep(reconnect_delay)
        return 1
    finally:
        console.cancel()
        participant.close()


async def main() -> int:
    parser = argparse.ArgumentParser(description="CLI client for the GeoSync view sync server")
    parser.add_argument("--ws", default="ws://localhost:8000", help="WS base, e.g. ws://localhost:8000")
    parser.add_argument("--origin", help="Optional Origin header for WebSocket handshake")
    parser.add_argument("--reconnect-attempts", type=int, default=10)
    parser.add_argument("--reconnect-delay", type=float, default=1.0, help="Seconds between reconnects")
    parser.add_argument("--refresh-hz", type=float, default=60.0, help="Follower apply rate")
    parser.add_argument("--log-level", default="WARNING")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_drive = sub.add_parser("drive", help="Join as source and emit views read from stdin")
    p_drive.add_argument("--session", help="Session id (generated if omitted)")

    p_follow = sub.add_parser("follow", help="Join as follower and print applied views")
    p_follow.add_argument("--session", required=True, help="Session id to follow")

    sub.add_parser("new-id", help="Print a fresh session id")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.cmd == "new-id":
        print(new_session_id())
        return 0

    session_id = args.session or new_session_id()
    if args.cmd == "drive" and not args.session:
        sys.stderr.write(f"[session id: {session_id}]\n")

    try:
        return await run_session(
            ws_base=args.ws,
            origin=args.origin,
            session_id=session_id,
            role="source" if args.cmd == "drive" else "follower",
            reconnect_attempts=args.reconnect_attempts,
            reconnect_delay=args.reconnect_delay,
            refresh_hz=args.refresh_hz,
        )
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2


def cli() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
