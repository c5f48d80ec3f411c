import asyncio
import unittest

from behaviors.configurator import Configurator, VERSION_REPLY
from behaviors.exception_utils import ConfigurationIncomplete, ReloadInProgress, StoreUnavailable
from fakes import make_context, seed_roster, recording_factory, feed


class TestBootstrap(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.ctx = await make_context()
        self.configurator = Configurator(self.ctx, client_factory=recording_factory)

    async def asyncTearDown(self) -> None:
        self.ctx.plugins.unload_all()
        await self.ctx.store.executor.close()

    async def test_bootstrap_builds_config_and_connects(self) -> None:
        await seed_roster(self.ctx.store)
        await self.ctx.store.save_settings("irc.example.net:6697", "castellan")
        await self.configurator.bootstrap()

        config = self.ctx.config
        self.assertEqual((config.server, config.port, config.nick), ("irc.example.net", 6697, "castellan"))
        self.assertEqual(config.channels, ("#x",))
        self.assertEqual(list(config.plugins), ["squire", "admin"])
        self.assertEqual(sorted(self.ctx.plugins.plugins), ["admin", "squire"])
        self.assertTrue(self.ctx.connection.connected)
        self.assertIn("ssl", self.ctx.connection.connect_kwargs["connect_factory"].connection_args)

    async def test_missing_settings_is_fatal(self) -> None:
        with self.assertRaises(ConfigurationIncomplete) as caught:
            await self.configurator.bootstrap()
        self.assertEqual(caught.exception.step, "settings")
        self.assertIsNone(self.ctx.connection)

    async def test_no_channels_is_fatal(self) -> None:
        await seed_roster(self.ctx.store, channels=())
        with self.assertRaises(ConfigurationIncomplete) as caught:
            await self.configurator.bootstrap()
        self.assertEqual(caught.exception.step, "channels")

    async def test_no_plugins_is_fatal(self) -> None:
        await seed_roster(self.ctx.store, plugins=())
        with self.assertRaises(ConfigurationIncomplete) as caught:
            await self.configurator.bootstrap()
        self.assertEqual(caught.exception.step, "plugins")
        self.assertFalse(self.ctx.connection.connected)

    async def test_store_failure_names_the_step(self) -> None:
        await seed_roster(self.ctx.store)

        async def broken():
            raise StoreUnavailable("database went away")

        self.ctx.store.load_plugin_channels = broken
        with self.assertRaises(ConfigurationIncomplete) as caught:
            await self.configurator.bootstrap()
        self.assertEqual(caught.exception.step, "plugin channels")

    async def test_welcome_identifies_and_joins(self) -> None:
        await seed_roster(self.ctx.store, nickserv_pw="hunter2")
        await self.configurator.bootstrap()
        await feed(self.ctx, ":irc.example.net 001 castellan :Welcome")
        self.assertEqual(self.ctx.connection.sent, ["PRIVMSG NickServ :IDENTIFY hunter2", "JOIN #x"])

    async def test_version_request_is_answered(self) -> None:
        await seed_roster(self.ctx.store)
        await self.configurator.bootstrap()
        await feed(self.ctx, ":bob!b@h PRIVMSG castellan :\x01VERSION\x01")
        self.assertEqual(self.ctx.connection.sent, [f"NOTICE bob :\x01VERSION {VERSION_REPLY}\x01"])

    async def test_messages_for_unknown_plugins_are_skipped(self) -> None:
        await seed_roster(self.ctx.store, plugins=("squire", "admin"))
        await self.ctx.store.add_plugin_message("admin", "auth_required", "auth first")
        plugins = await self.configurator.load_messages({})
        self.assertEqual(plugins, {})


class TestReload(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.ctx = await make_context()
        self.configurator = Configurator(self.ctx, client_factory=recording_factory)
        await seed_roster(self.ctx.store, plugins=("squire",))
        await self.ctx.store.add_plugin_message("squire", "scanning", "on it")
        await self.configurator.bootstrap()

    async def asyncTearDown(self) -> None:
        self.ctx.plugins.unload_all()
        await self.ctx.store.executor.close()

    async def test_reload_replaces_plugin_map(self) -> None:
        await self.ctx.store.enable_plugin("admin")
        old_squire = self.ctx.plugins.plugins["squire"]

        result = await self.configurator.reload("#x")

        self.assertTrue(result.succeeded)
        self.assertEqual(result.plugins, {"squire": "reloaded", "admin": "loaded"})
        self.assertIsNot(self.ctx.plugins.plugins["squire"], old_squire)
        self.assertEqual(self.ctx.connection.said("#x"), ["loaded: admin; reloaded: squire"])

    async def test_templates_do_not_accumulate(self) -> None:
        await self.configurator.reload()
        await self.configurator.reload()
        self.assertEqual(self.ctx.config.plugins["squire"].messages, {"scanning": ["on it"]})

    async def test_failed_step_leaves_live_map_untouched(self) -> None:
        before = self.ctx.config.plugins
        squire = self.ctx.plugins.plugins["squire"]

        async def broken():
            raise StoreUnavailable("gone")

        self.ctx.store.load_plugin_messages = broken
        result = await self.configurator.reload("#x")

        self.assertFalse(result.succeeded)
        self.assertIsInstance(result.error, ConfigurationIncomplete)
        self.assertIs(self.ctx.config.plugins, before)
        self.assertEqual(list(before), ["squire"])
        self.assertEqual(before["squire"].messages, {"scanning": ["on it"]})
        self.assertIs(self.ctx.plugins.plugins["squire"], squire)
        self.assertEqual(self.ctx.connection.said("#x"), ["Reload failed: plugin messages: gone"])

    async def test_concurrent_reload_is_rejected(self) -> None:
        gate = asyncio.Event()
        load_plugin_channels = self.ctx.store.load_plugin_channels

        async def slow():
            await gate.wait()
            return await load_plugin_channels()

        self.ctx.store.load_plugin_channels = slow
        first = asyncio.create_task(self.configurator.reload())
        while not self.configurator.reloading:
            await asyncio.sleep(0)

        with self.assertRaises(ReloadInProgress):
            await self.configurator.reload()

        gate.set()
        result = await first
        self.assertTrue(result.succeeded)
        self.assertFalse(self.configurator.reloading)


if __name__ == "__main__":
    unittest.main()
