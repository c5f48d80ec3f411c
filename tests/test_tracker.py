import unittest

from behaviors.dispatch import parse_addressed, make_command
from behaviors.events import EventBus, EventKind
from behaviors.tracker import ChannelTracker, split_prefixes


class TestChannelTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.tracker = ChannelTracker(lambda: "castellan")
        self.tracker.add_member("#x", "castellan", "castellan!c@bot.host", modes={"o"})
        self.tracker.add_member("#x", "Bob", "Bob!b@friend.net", modes={"v"})

    def test_split_prefixes(self) -> None:
        self.assertEqual(split_prefixes("@+alice"), ("alice", {"o", "v"}))
        self.assertEqual(split_prefixes("bob"), ("bob", set()))

    def test_lookups_ignore_case(self) -> None:
        self.assertEqual(self.tracker.hostmask_for("BOB"), "Bob!b@friend.net")
        self.assertTrue(self.tracker.has_mode("#X", "bob", "v"))
        self.assertTrue(self.tracker.bot_has_ops("#x"))

    def test_actionable_events_skip_the_bot(self) -> None:
        events = self.tracker.actionable_events()
        self.assertEqual([(e.nick, e.channel, e.modes) for e in events], [("Bob", "#x", frozenset({"v"}))])

    def test_mode_changes(self) -> None:
        self.tracker.set_mode("#x", "bob", "v", False)
        self.tracker.set_mode("#x", "bob", "o", True)
        self.assertEqual(self.tracker.modes_of("#x", "bob"), {"o"})

    def test_rename_moves_hostmask(self) -> None:
        self.tracker.rename("Bob", "Robert")
        self.assertIsNone(self.tracker.hostmask_for("bob"))
        self.assertEqual(self.tracker.hostmask_for("robert"), "Robert!b@friend.net")
        self.assertEqual(self.tracker.channels_of("robert"), ["#x"])

    def test_leaving_last_channel_forgets_hostmask(self) -> None:
        self.tracker.remove_member("#x", "bob")
        self.assertIsNone(self.tracker.get_nick("bob"))

    def test_set_hostmask_reports_changes(self) -> None:
        self.assertFalse(self.tracker.set_hostmask("bob", "Bob!b@friend.net"))
        self.assertTrue(self.tracker.set_hostmask("bob", "Bob!b@elsewhere.net"))


class TestAddressing(unittest.TestCase):
    def test_parse_addressed(self) -> None:
        self.assertEqual(parse_addressed("castellan: af bob", "castellan"), "af bob")
        self.assertEqual(parse_addressed("Castellan, scan", "castellan"), "scan")
        self.assertIsNone(parse_addressed("castellanx: scan", "castellan"))
        self.assertIsNone(parse_addressed("hello castellan", "castellan"))

    def test_make_command(self) -> None:
        command = make_command("boss", "boss!b@h", "#x", "AF bob o", private=False)
        self.assertEqual((command.command, command.args), ("af", ("bob", "o")))
        self.assertEqual(command.reply_target, "#x")
        self.assertIsNone(make_command("boss", "boss!b@h", None, "   ", private=True))


class TestEventBus(unittest.IsolatedAsyncioTestCase):
    async def test_failing_handler_does_not_block_others(self) -> None:
        logged, seen = [], []
        bus = EventBus(log=logged.append)

        def broken(payload):
            raise ValueError("nope")

        async def collect(payload):
            seen.append(payload)

        bus.subscribe(EventKind.JOIN, broken, owner="a")
        bus.subscribe(EventKind.JOIN, collect, owner="b")
        bus.publish(EventKind.JOIN, "payload")
        await bus.drain()
        self.assertEqual(seen, ["payload"])
        self.assertTrue(any("nope" in line for line in logged))

    async def test_unsubscribe_owner(self) -> None:
        bus = EventBus()
        bus.subscribe(EventKind.JOIN, print, owner="squire")
        bus.subscribe(EventKind.MODE_CHANGE, print, owner="squire")
        bus.subscribe(EventKind.JOIN, print, owner="core")
        self.assertEqual(bus.unsubscribe_owner("squire"), 2)
        self.assertEqual(bus.subscriber_count(EventKind.JOIN), 1)


if __name__ == "__main__":
    unittest.main()
