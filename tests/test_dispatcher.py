import unittest

from feedwire.connection import CallbackConnection
from feedwire.dispatcher import DeliveryResult, Dispatcher
from feedwire.protocol import FeedUpdate, InboxChanged
from feedwire.registry import ConnectionRegistry


class DispatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = ConnectionRegistry()
        self.dispatcher = Dispatcher(self.registry)
        self.received: dict[str, list[dict]] = {}

    def _connect(self, user_id: str) -> CallbackConnection:
        conn = CallbackConnection(lambda frame: self.received.setdefault(user_id, []).append(frame))
        conn.user_id = user_id
        self.registry.register(user_id, conn)
        return conn

    def test_notify_delivers_to_registered_user(self):
        self._connect("alice")
        result = self.dispatcher.notify("alice", FeedUpdate())
        self.assertIs(result, DeliveryResult.DELIVERED)
        self.assertEqual(self.received["alice"], [{"type": "feed_update"}])

    def test_notify_drops_when_not_connected(self):
        self.assertIs(self.dispatcher.notify("nobody", InboxChanged()), DeliveryResult.NOT_CONNECTED)

    def test_write_failure_is_swallowed_and_entry_cleaned(self):
        conn = self._connect("alice")
        conn.close()

        with self.assertLogs("feedwire.dispatcher", level="WARNING"):
            result = self.dispatcher.notify("alice", FeedUpdate())

        self.assertIs(result, DeliveryResult.WRITE_FAILED)
        self.assertIsNone(self.registry.lookup("alice"))
        self.assertNotIn("alice", self.received)

    def test_broadcast_reaches_every_connection(self):
        self._connect("alice")
        self._connect("bob")
        dead = self._connect("carol")
        dead.close()

        with self.assertLogs("feedwire.dispatcher", level="WARNING"):
            results = self.dispatcher.broadcast(FeedUpdate())

        self.assertEqual(
            results,
            {
                "alice": DeliveryResult.DELIVERED,
                "bob": DeliveryResult.DELIVERED,
                "carol": DeliveryResult.WRITE_FAILED,
            },
        )
        self.assertEqual(self.received["bob"], [{"type": "feed_update"}])
        self.assertEqual(sorted(self.registry.identities()), ["alice", "bob"])


if __name__ == "__main__":
    unittest.main()
