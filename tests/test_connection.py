import ssl
import unittest

from behaviors.configurator import Configurator
from castellan import shutdown, wait_for_disconnect
from fakes import make_context, seed_roster, recording_factory, feed

WELCOME = ":irc.example.net 001 castellan :Welcome"


class ConnectionTestCase(unittest.IsolatedAsyncioTestCase):
    settings = None
    server = "irc.example.net"

    async def asyncSetUp(self) -> None:
        self.ctx = await make_context(self.settings)
        await seed_roster(self.ctx.store)
        await self.ctx.store.save_settings(self.server, "castellan")
        self.configurator = Configurator(self.ctx, client_factory=recording_factory)
        await self.configurator.bootstrap()
        self.conn = self.ctx.connection

    async def asyncTearDown(self) -> None:
        self.ctx.plugins.unload_all()
        await self.ctx.store.executor.close()


class TestLibraryEvents(ConnectionTestCase):
    async def test_ping_is_answered_by_the_reactor(self) -> None:
        await feed(self.ctx, "PING :token123")
        self.assertEqual(self.conn.sent, ["PONG token123"])

    async def test_nick_in_use_tries_with_underscore(self) -> None:
        await feed(self.ctx, ":irc.example.net 433 * castellan :Nickname is already in use")
        await feed(self.ctx, ":irc.example.net 433 * castellan_ :Nickname is already in use")
        self.assertEqual(self.conn.sent, ["NICK castellan_", "NICK castellan__"])

    async def test_welcome_records_the_nick_the_server_gave_us(self) -> None:
        await feed(self.ctx, ":irc.example.net 001 castellan_ :Welcome")
        self.assertEqual(self.ctx.bot_nick(), "castellan_")
        await feed(self.ctx, ":castellan_!c@bot.host NICK warden")
        self.assertEqual(self.ctx.bot_nick(), "warden")

    async def test_channel_modes_update_the_tracker(self) -> None:
        await feed(self.ctx, WELCOME, ":castellan!c@bot.host JOIN #x",
                   ":irc.example.net 353 castellan = #x :@castellan bob carol",
                   ":op!o@h MODE #x +ov-l bob carol")
        self.assertEqual(self.ctx.tracker.modes_of("#x", "bob"), {"o"})
        self.assertEqual(self.ctx.tracker.modes_of("#x", "carol"), {"v"})
        await feed(self.ctx, ":op!o@h MODE #x -o bob")
        self.assertEqual(self.ctx.tracker.modes_of("#x", "bob"), set())

    async def test_server_prefixed_join_has_no_hostmask(self) -> None:
        await feed(self.ctx, WELCOME, ":castellan!c@bot.host JOIN #x", ":bob JOIN #x")
        self.assertIsNone(self.ctx.tracker.event_for("#x", "bob").hostmask)

    async def test_failing_handler_does_not_break_the_connection(self) -> None:
        def broken(old, new):
            raise RuntimeError("boom")

        self.ctx.tracker.rename = broken
        self.ctx.debug.set_debug_mode(True)
        with self.assertLogs(self.ctx.debug.logger, "INFO") as logs:
            await feed(self.ctx, WELCOME, ":bob!b@h NICK robert")
        self.assertTrue(any("Error handling nick: boom" in line for line in logs.output))

        await feed(self.ctx, "PING :still-here")
        self.assertEqual(self.conn.sent[-1], "PONG still-here")


class TestTransport(ConnectionTestCase):
    async def test_plain_port_connects_without_tls(self) -> None:
        factory = self.conn.connect_kwargs["connect_factory"]
        self.assertEqual(factory.connection_args, {})
        self.assertEqual(self.conn.connect_kwargs["username"], "castellan")

    async def test_shutdown_quits_and_resolves_the_main_loop(self) -> None:
        closed = wait_for_disconnect(self.conn)
        self.assertFalse(closed.done())
        await shutdown(self.ctx)
        self.assertTrue(self.conn.sent[-1].startswith("QUIT :"))
        self.assertFalse(self.conn.is_connected())
        self.assertEqual(self.ctx.plugins.plugins, {})
        self.assertTrue(closed.done())

    async def test_waiting_on_a_dead_connection_returns_at_once(self) -> None:
        self.conn.disconnect("gone")
        self.assertEqual(await wait_for_disconnect(self.conn), "not connected")


class TestTlsPort(ConnectionTestCase):
    server = "irc.example.net:6697"

    async def test_tls_port_uses_an_ssl_context(self) -> None:
        factory = self.conn.connect_kwargs["connect_factory"]
        self.assertIsInstance(factory.connection_args["ssl"], ssl.SSLContext)


class TestTlsDisabled(ConnectionTestCase):
    server = "irc.example.net:6697"
    settings = {
        "core": {"admins": ["*!*@admin.example"]},
        "squire": {"scan_interval_minutes": 0},
        "connection": {"ssl": False},
    }

    async def test_setting_overrides_the_port_default(self) -> None:
        factory = self.conn.connect_kwargs["connect_factory"]
        self.assertEqual(factory.connection_args, {})


if __name__ == "__main__":
    unittest.main()
