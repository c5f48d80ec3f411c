"""
Configurator: builds the runtime configuration from the roster database,
constructs the IRC connection, loads plugins and connects.

Bootstrap runs every step in order and aborts on the first failure; the bot
never starts with a partial configuration. Reload reruns the plugin steps
against the live connection, stages the new plugin map, and swaps it in only
when every step succeeded.
"""

import asyncio
import ssl
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import irc.client_aio
import irc.connection

from .context import BotContext, RuntimeConfig
from .dispatch import EventRouter
from .exception_utils import (
    CastellanException,
    ConfigurationIncomplete,
    ReloadInProgress,
)
from .plugin_manager import PluginManager
from .roster_store import PluginRecord

VERSION_REPLY = "castellan IRC bot - channel steward"


@dataclass
class ReloadResult:
    plugins: Dict[str, str] = field(default_factory=dict)
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def default_client_factory(config: RuntimeConfig, ctx: BotContext) -> irc.client_aio.AioConnection:
    """One reactor per connection, running on the bot's event loop."""
    reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
    return reactor.server()


class Configurator:
    def __init__(self, ctx: BotContext,
                 client_factory: Callable[[RuntimeConfig, BotContext], Any] = default_client_factory):
        self.ctx = ctx
        self.client_factory = client_factory
        self._reload_lock = asyncio.Lock()
        ctx.configurator = self
        if ctx.plugins is None:
            ctx.plugins = PluginManager(ctx)

    @property
    def reloading(self) -> bool:
        return self._reload_lock.locked()

    async def _step(self, name: str, coro):
        self.ctx.log_debug(f"[config] {name}...")
        try:
            return await coro
        except ConfigurationIncomplete:
            raise
        except Exception as e:
            raise ConfigurationIncomplete(name, str(e)) from e

    # --- Bootstrap ---

    async def bootstrap(self, connect: bool = True) -> BotContext:
        """Run the full startup sequence. Raises ConfigurationIncomplete on any failure."""
        config = await self._step("settings", self.fetch_settings())
        self.ctx.config = config

        config.channels = await self._step("channels", self.fetch_channels())
        channel_scope = await self._step("plugin channels", self.fetch_plugin_channels())

        self.ctx.connection = self.build_client(config)

        plugins = await self._step("plugins", self.enumerate_plugins(channel_scope))
        plugins = await self._step("plugin messages", self.load_messages(plugins))
        config.plugins = plugins

        loaded = await self.ctx.plugins.load_all(config.plugins)
        self.ctx.log_debug(f"[config] Plugins initialised: {loaded}")

        if connect:
            await self._step("connect", self.connect())
        return self.ctx

    async def connect(self):
        config = self.ctx.config
        use_ssl = self.ctx.section("connection").get("ssl")
        if use_ssl is None:
            use_ssl = config.port == 6697
        if use_ssl:
            connect_factory = irc.connection.AioFactory(ssl=ssl.create_default_context())
        else:
            connect_factory = irc.connection.AioFactory()
        self.ctx.log_debug(f"[config] Connecting to {config.server}:{config.port} (ssl={use_ssl})")
        return await self.ctx.connection.connect(
            config.server, config.port, config.nick,
            username=config.username,
            ircname=config.realname,
            connect_factory=connect_factory,
        )

    async def fetch_settings(self) -> RuntimeConfig:
        row = await self.ctx.store.load_settings()
        if not row:
            raise ConfigurationIncomplete("settings", "the config table is empty")
        config = RuntimeConfig.from_settings(row)
        if not config.server or not config.nick:
            raise ConfigurationIncomplete("settings", "server and nick are required")
        return config

    async def fetch_channels(self) -> Tuple[str, ...]:
        channels = await self.ctx.store.load_channels()
        if not channels:
            # A bot with no channels has nothing to do
            raise ConfigurationIncomplete("channels", "no enabled channels found")
        return tuple(sorted(channels))

    async def fetch_plugin_channels(self) -> Dict[int, List[str]]:
        return await self.ctx.store.load_plugin_channels()

    def build_client(self, config: RuntimeConfig):
        """Construct the connection and register the baseline behaviors. Does not connect."""
        connection = self.client_factory(config, self.ctx)
        connection.add_global_handler("welcome", self._on_welcome)
        connection.add_global_handler("nicknameinuse", self._on_nicknameinuse)
        connection.add_global_handler("ctcp", self._on_ctcp)
        connection.add_global_handler("disconnect", self._on_disconnect)
        EventRouter(self.ctx).attach(connection)
        return connection

    def _on_welcome(self, connection, event):
        self.ctx.log_debug(f"[config] Registered with {event.source or self.ctx.config.server}")
        self.identify()
        for channel in self.ctx.config.channels:
            self.ctx.log_debug(f"[config] Sending JOIN command for: {channel}")
            connection.join(channel)

    def _on_nicknameinuse(self, connection, event):
        taken = event.arguments[0] if event.arguments else connection.get_nickname()
        self.ctx.log_debug(f"[config] Nick {taken} is in use, trying {taken}_")
        connection.nick(f"{taken}_")

    def _on_disconnect(self, connection, event):
        reason = event.arguments[0] if event.arguments else ""
        self.ctx.log_debug(f"[config] Disconnected from {self.ctx.config.server}: {reason}")

    def _on_ctcp(self, connection, event):
        if event.arguments and event.arguments[0] == "VERSION":
            connection.ctcp_reply(event.source.nick, f"VERSION {VERSION_REPLY}")

    def identify(self):
        password = self.ctx.config.nickserv_password
        if password:
            self.ctx.connection.privmsg("NickServ", f"IDENTIFY {password}")

    async def enumerate_plugins(self, channel_scope: Dict[int, List[str]]) -> Dict[str, PluginRecord]:
        records = await self.ctx.store.load_plugin_roster(channel_scope)
        plugins = {}
        for record in records:
            plugins[record.filename] = record
        if not plugins:
            raise ConfigurationIncomplete("plugins", "no enabled plugins found")
        return plugins

    async def load_messages(self, plugins: Dict[str, PluginRecord]) -> Dict[str, PluginRecord]:
        """Attach message templates. Every record gets a fresh collection."""
        rows = await self.ctx.store.load_plugin_messages()
        for record in plugins.values():
            record.messages = {}
        for plugin_name, message_name, body in rows:
            record = plugins.get(plugin_name)
            if record is None:
                self.ctx.log_debug(f"[config] Skipping message '{message_name}' for unknown plugin {plugin_name}")
                continue
            record.messages.setdefault(message_name, []).append(body)
        return plugins

    # --- Reload ---

    async def reload(self, channel: Optional[str] = None) -> ReloadResult:
        """
        Refresh the plugin map and reinitialise plugins on the live connection.

        Raises ReloadInProgress immediately if another reload is running.
        Step failures are reported to `channel` and leave the current plugin
        map untouched.
        """
        if self._reload_lock.locked():
            raise ReloadInProgress()

        async with self._reload_lock:
            try:
                channel_scope = await self._step("plugin channels", self.fetch_plugin_channels())
                staged = await self._step("plugins", self.enumerate_plugins(channel_scope))
                staged = await self._step("plugin messages", self.load_messages(staged))
            except CastellanException as e:
                self.ctx.log_debug(f"[config] Reload failed: {e}\n{traceback.format_exc()}")
                self._notify(channel, f"Reload failed: {e}")
                return ReloadResult(error=e)

            self.ctx.config.plugins = staged
            results = await self.ctx.plugins.reload_all(staged)
            self.ctx.log_debug(f"[config] Reload complete: {results}")
            self._notify(channel, self.describe(results))
            return ReloadResult(plugins=results)

    @staticmethod
    def describe(results: Dict[str, str]) -> str:
        if not results:
            return "Reloaded: nothing to load."
        grouped: Dict[str, List[str]] = {}
        for name, outcome in sorted(results.items()):
            grouped.setdefault(outcome, []).append(name)
        return "; ".join(f"{outcome}: {', '.join(names)}" for outcome, names in grouped.items())

    def _notify(self, channel: Optional[str], text: str):
        if channel and self.ctx.connection is not None:
            self.ctx.connection.privmsg(channel, text)
