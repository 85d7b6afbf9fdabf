"""Command line entry points: the aiohttp server and an offline frame simulator."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Iterable, TextIO

from aiohttp import web

from .config import Settings, load_settings_from_env
from .connection import CallbackConnection
from .messaging import MessagingSession
from .protocol import FeedUpdate
from .runtime import build_runtime
from .sessions import HandshakeContext
from .ws_transport import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def simulate(frames: Iterable[dict], output: TextIO) -> None:
    """Drive messaging sessions from JSON frames and write every pushed event.

    Each outbound event becomes one line ``{"to": user_id, "event": {...}}``.
    """

    runtime = build_runtime(Settings())
    sessions: dict[str, MessagingSession] = {}

    def writer_for(user_id: str):
        def _write(frame: dict) -> None:
            output.write(json.dumps({"to": user_id, "event": frame}) + "\n")

        return _write

    def active_session(user_id: str) -> MessagingSession:
        session = sessions.get(user_id)
        if session is None:
            raise ValueError(f"user {user_id} is not connected")
        return session

    for frame in frames:
        frame_type = frame.get("t")
        if frame_type == "user":
            runtime.social.ensure_user(str(frame["user_id"]), frame.get("username"))
        elif frame_type == "connect":
            user_id = str(frame["user_id"])
            token = runtime.sessions.create(user_id).session_token
            ctx = HandshakeContext(headers={"Authorization": f"Bearer {token}"})
            session = MessagingSession(runtime, CallbackConnection(writer_for(user_id)))
            session.accept()
            if session.authenticate(ctx):
                sessions[user_id] = session
        elif frame_type == "disconnect":
            session = sessions.pop(str(frame["user_id"]), None)
            if session is not None:
                session.close()
                session.connection.close()
        elif frame_type == "send":
            active_session(str(frame["user_id"])).handle(frame["event"])
        elif frame_type in {"follow", "unfollow"}:
            follower = str(frame["follower"])
            followee = str(frame["followee"])
            if frame_type == "follow":
                runtime.social.follow(follower, followee)
            else:
                runtime.social.unfollow(follower, followee)
            runtime.dispatcher.notify(follower, FeedUpdate())
        elif frame_type == "privacy":
            runtime.social.set_privacy_preference(str(frame["user_id"]), bool(frame["enabled"]))
        else:
            raise ValueError(f"unsupported frame type: {frame_type}")


def _load_frames(handle: TextIO) -> Iterable[dict]:
    content = handle.read()
    if not content.strip():
        return []

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        parsed = None

    if parsed is None:
        frames: list[dict] = []
        for line in content.splitlines():
            if line.strip():
                frames.append(json.loads(line))
        return frames

    if isinstance(parsed, list):
        return parsed
    return [parsed]


def _run_simulation(args: argparse.Namespace, output: TextIO) -> int:
    if args.file is None:
        frames = _load_frames(sys.stdin)
    else:
        with args.file:
            frames = _load_frames(args.file)
    simulate(frames, output)
    return 0


def _run_serve(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    settings = load_settings_from_env()
    if args.db is not None:
        settings = replace(settings, db_path=args.db)
    if settings.db_path is None:
        # users and sessions are written by the web app into the shared database
        parser.error("serve needs a database: pass --db or set FEEDWIRE_DB_PATH")
    if args.log_level is not None:
        settings = replace(settings, log_level=args.log_level.upper())
    configure_logging(settings.log_level)
    app = create_app(settings)
    web.run_app(app, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="feedwire", description="Realtime direct messaging server")
    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate_parser = subparsers.add_parser("simulate", help="Run messaging frames through the core offline")
    simulate_parser.add_argument(
        "-f",
        "--file",
        type=argparse.FileType("r"),
        default=None,
        help="Path to JSON frames file; defaults to stdin",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the aiohttp server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind")
    serve_parser.add_argument("--port", type=int, default=3000, help="Port to bind")
    serve_parser.add_argument("--db", type=str, default=None, help="Path to the SQLite database shared with the web app; overrides FEEDWIRE_DB_PATH")
    serve_parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default=None,
        help="Overrides FEEDWIRE_LOG_LEVEL",
    )
    return parser


def main(argv: list[str] | None = None, output: TextIO | None = None) -> int:
    """Entry point for CLI commands."""

    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "simulate":
        return _run_simulation(args, output or sys.stdout)
    return _run_serve(args, parser)


if __name__ == "__main__":  # pragma: no cover - convenience execution
    raise SystemExit(main())
