import os
import sqlite3
import tempfile
import unittest

from feedwire.errors import StoreError
from feedwire.messages import DirectMessage
from feedwire.sqlite_backend import SQLiteBackend
from feedwire.sqlite_messages import SQLiteMessageStore
from feedwire.sqlite_sessions import SQLiteSessionStore
from feedwire.sqlite_social import SQLiteSocialGraph


def _msg(msg_id: str, sender: str, recipient: str, created_ms: int, text: str = "") -> DirectMessage:
    return DirectMessage(id=msg_id, sender=sender, recipient=recipient, text=text or msg_id, created_ms=created_ms)


class SQLiteBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmpdir.name, "feedwire.db")
        self.backend = SQLiteBackend(self.db_path)
        self.social = SQLiteSocialGraph(self.backend)
        for user_id in ("a", "b", "c"):
            self.social.ensure_user(user_id)

    def tearDown(self) -> None:
        self.backend.close()
        self.tmpdir.cleanup()

    def test_messages_survive_restart(self):
        SQLiteMessageStore(self.backend).append(_msg("m1", "a", "b", 1, "persisted"))
        self.backend.close()

        self.backend = SQLiteBackend(self.db_path)
        history = SQLiteMessageStore(self.backend).query_conversation("b", "a")
        self.assertEqual([(m.id, m.text, m.sender) for m in history], [("m1", "persisted", "a")])

    def test_conversation_is_symmetric_and_ordered(self):
        store = SQLiteMessageStore(self.backend)
        store.append(_msg("m2", "b", "a", 20))
        store.append(_msg("m1", "a", "b", 10))
        store.append(_msg("m3", "a", "b", 20))
        store.append(_msg("x", "a", "c", 5))

        forward = store.query_conversation("a", "b")
        self.assertEqual([m.id for m in forward], ["m1", "m2", "m3"])
        self.assertEqual(forward, store.query_conversation("b", "a"))

    def test_write_failure_raises_store_error(self):
        store = SQLiteMessageStore(self.backend)
        with self.assertRaises(StoreError):
            store.append(_msg("m1", "a", "ghost", 1))
        store.append(_msg("m1", "a", "b", 1))
        with self.assertRaises(StoreError) as ctx:
            store.append(_msg("m1", "a", "b", 2))
        self.assertIsInstance(ctx.exception.__cause__, sqlite3.IntegrityError)

    def test_conversation_list(self):
        store = SQLiteMessageStore(self.backend)
        store.append(_msg("m1", "a", "b", 10, "first"))
        store.append(_msg("m2", "b", "a", 20, "reply"))
        store.append(_msg("m3", "c", "a", 15, "from c"))
        store.append(_msg("m4", "a", "a", 30, "self"))

        summaries = store.list_conversations("a")
        self.assertEqual([(s.partner_id, s.last_text) for s in summaries], [("b", "reply"), ("c", "from c")])

    def test_privacy_preference_defaults_to_unset(self):
        self.assertIsNone(self.social.get_privacy_preference("a"))
        self.social.set_privacy_preference("a", True)
        self.assertTrue(self.social.get_privacy_preference("a"))
        self.social.set_privacy_preference("a", False)
        self.assertIs(self.social.get_privacy_preference("a"), False)
        self.assertIsNone(self.social.get_privacy_preference("nobody"))
        with self.assertRaises(KeyError):
            self.social.set_privacy_preference("nobody", True)

    def test_follow_is_idempotent(self):
        self.assertTrue(self.social.follow("a", "b"))
        self.assertFalse(self.social.follow("a", "b"))
        self.assertTrue(self.social.follow_exists("a", "b"))
        self.assertFalse(self.social.follow_exists("b", "a"))

        self.assertTrue(self.social.unfollow("a", "b"))
        self.assertFalse(self.social.unfollow("a", "b"))
        self.assertFalse(self.social.follow_exists("a", "b"))

    def test_follow_unknown_user_raises_store_error(self):
        with self.assertRaises(StoreError):
            self.social.follow("a", "ghost")

    def test_ensure_user_keeps_existing_record(self):
        self.social.set_privacy_preference("a", True)
        record = self.social.ensure_user("a", "renamed")
        self.assertEqual(record.username, "a")
        self.assertTrue(record.dm_follow_only)
        self.assertTrue(self.social.user_exists("a"))
        self.assertFalse(self.social.user_exists("zed"))

    def test_sessions_survive_restart_and_expire(self):
        sessions = SQLiteSessionStore(self.backend, ttl_ms=60_000)
        created = sessions.create("a")
        self.backend.close()

        self.backend = SQLiteBackend(self.db_path)
        sessions = SQLiteSessionStore(self.backend, ttl_ms=60_000)
        loaded = sessions.get(created.session_token)
        self.assertIsNotNone(loaded)
        self.assertEqual(loaded.user_id, "a")

        sessions.invalidate(loaded)
        self.assertIsNone(sessions.get(created.session_token))

        expired = SQLiteSessionStore(self.backend, ttl_ms=-1).create("b")
        self.assertIsNone(sessions.get(expired.session_token))

    def test_get_user_returns_record(self):
        self.social.ensure_user("d", "Dana")
        self.social.set_privacy_preference("d", False)

        record = self.social.get_user("d")

        self.assertEqual((record.user_id, record.username, record.dm_follow_only), ("d", "Dana", False))
        self.assertIsNone(self.social.get_user("zed"))

    def test_social_graph_wraps_database_failures(self):
        sessions = SQLiteSessionStore(self.backend)
        self.backend.close()

        calls = [
            lambda: self.social.ensure_user("d"),
            lambda: self.social.get_user("a"),
            lambda: self.social.user_exists("a"),
            lambda: self.social.get_privacy_preference("a"),
            lambda: self.social.set_privacy_preference("a", True),
            lambda: self.social.follow("a", "b"),
            lambda: self.social.unfollow("a", "b"),
            lambda: self.social.follow_exists("a", "b"),
            lambda: sessions.create("a"),
            lambda: sessions.get("st_missing"),
        ]
        for call in calls:
            with self.assertRaises(StoreError) as ctx:
                call()
            self.assertIsInstance(ctx.exception.__cause__, sqlite3.Error)

    def test_unsupported_schema_version_rejected(self):
        self.backend.connection.execute("PRAGMA user_version = 99")
        self.backend.close()
        with self.assertRaises(ValueError):
            self.backend = SQLiteBackend(self.db_path)
        self.backend = SQLiteBackend(":memory:")


if __name__ == "__main__":
    unittest.main()
