import contextlib
import io
import json
import os
import tempfile
import unittest
from unittest import mock

from feedwire.server import _load_frames, build_parser, main, simulate


def _events(buffer: io.StringIO) -> list[tuple[str, dict]]:
    return [(line["to"], line["event"]) for line in map(json.loads, buffer.getvalue().splitlines())]


USERS = [
    {"t": "user", "user_id": "alice"},
    {"t": "user", "user_id": "bob"},
]


class TestFeedwireServer(unittest.TestCase):
    def test_load_frames_accepts_array_or_lines(self):
        array_buffer = io.StringIO(json.dumps([{"t": "user", "user_id": "a"}]))
        ndjson_buffer = io.StringIO("\n".join(['{"t": "connect", "user_id": "a"}', '{"t": "disconnect", "user_id": "a"}']))

        self.assertEqual(list(_load_frames(array_buffer)), [{"t": "user", "user_id": "a"}])
        self.assertEqual([f["t"] for f in _load_frames(ndjson_buffer)], ["connect", "disconnect"])
        self.assertEqual(list(_load_frames(io.StringIO("  "))), [])

    def test_simulate_dm_between_connected_users(self):
        frames = USERS + [
            {"t": "connect", "user_id": "alice"},
            {"t": "connect", "user_id": "bob"},
            {"t": "send", "user_id": "alice", "event": {"type": "dm", "toUserId": "bob", "text": "hey"}},
        ]
        buffer = io.StringIO()

        simulate(frames, buffer)

        self.assertEqual(
            _events(buffer),
            [
                ("alice", {"type": "ws_ready", "userId": "alice"}),
                ("bob", {"type": "ws_ready", "userId": "bob"}),
                ("bob", {"type": "dm", "from": "alice", "text": "hey"}),
                ("bob", {"type": "new_message"}),
                ("alice", {"type": "dm_self", "text": "hey"}),
                ("alice", {"type": "new_message"}),
            ],
        )

    def test_simulate_privacy_and_follow(self):
        frames = USERS + [
            {"t": "privacy", "user_id": "bob", "enabled": True},
            {"t": "connect", "user_id": "alice"},
            {"t": "connect", "user_id": "bob"},
            {"t": "send", "user_id": "alice", "event": {"type": "dm", "toUserId": "bob", "text": "one"}},
            {"t": "follow", "follower": "bob", "followee": "alice"},
            {"t": "send", "user_id": "alice", "event": {"type": "dm", "toUserId": "bob", "text": "two"}},
        ]
        buffer = io.StringIO()

        simulate(frames, buffer)

        events = _events(buffer)
        self.assertIn(("alice", {"type": "dm_blocked"}), events)
        self.assertIn(("bob", {"type": "feed_update"}), events)
        self.assertIn(("bob", {"type": "dm", "from": "alice", "text": "two"}), events)
        self.assertNotIn(("bob", {"type": "dm", "from": "alice", "text": "one"}), events)

    def test_simulate_offline_recipient_then_history(self):
        frames = USERS + [
            {"t": "connect", "user_id": "alice"},
            {"t": "send", "user_id": "alice", "event": {"type": "dm", "toUserId": "bob", "text": "later"}},
            {"t": "disconnect", "user_id": "alice"},
            {"t": "connect", "user_id": "bob"},
            {"t": "send", "user_id": "bob", "event": {"type": "history", "withUser": "alice"}},
        ]
        buffer = io.StringIO()

        simulate(frames, buffer)

        to, history = _events(buffer)[-1]
        self.assertEqual(to, "bob")
        self.assertEqual(history["type"], "history")
        self.assertEqual([m["text"] for m in history["messages"]], ["later"])

    def test_simulate_rejects_unknown_frames(self):
        with self.assertRaises(ValueError):
            simulate([{"t": "teleport"}], io.StringIO())

    def test_simulate_send_requires_connection(self):
        with self.assertRaises(ValueError):
            simulate(USERS + [{"t": "send", "user_id": "alice", "event": {"type": "history", "withUser": "bob"}}], io.StringIO())

    def test_main_simulate_reads_file(self):
        frames = USERS + [{"t": "connect", "user_id": "alice"}]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "frames.json")
            with open(path, "w", encoding="utf-8") as handle:
                json.dump(frames, handle)

            buffer = io.StringIO()
            exit_code = main(["simulate", "-f", path], output=buffer)

        self.assertEqual(exit_code, 0)
        self.assertEqual(_events(buffer), [("alice", {"type": "ws_ready", "userId": "alice"})])

    def test_simulate_refuses_connection_for_unknown_user(self):
        frames = [{"t": "user", "user_id": "bob"}, {"t": "connect", "user_id": "ghost"}]
        buffer = io.StringIO()

        simulate(frames, buffer)
        self.assertEqual(buffer.getvalue(), "")

        with self.assertRaises(ValueError):
            simulate(
                frames + [{"t": "send", "user_id": "ghost", "event": {"type": "dm", "toUserId": "bob", "text": "hi"}}],
                io.StringIO(),
            )

    def test_serve_requires_database(self):
        stderr = io.StringIO()
        with mock.patch.dict(os.environ, {}, clear=True), contextlib.redirect_stderr(stderr):
            with self.assertRaises(SystemExit) as ctx:
                main(["serve"])

        self.assertEqual(ctx.exception.code, 2)
        self.assertIn("FEEDWIRE_DB_PATH", stderr.getvalue())

    def test_serve_arguments(self):
        args = build_parser().parse_args(["serve", "--port", "8080", "--db", "chat.db", "--log-level", "debug"])
        self.assertEqual((args.host, args.port, args.db, args.log_level), ("127.0.0.1", 8080, "chat.db", "debug"))


if __name__ == "__main__":
    unittest.main()
