# Shared test doubles: an irc.client_aio connection that records what it
# would send, and a context wired to an in-memory roster database.

import asyncio

import irc.client
import irc.client_aio

from behaviors.admin_validator import AdminValidator
from behaviors.context import BotContext
from behaviors.debug_log import DebugLogger
from behaviors.events import EventBus
from behaviors.roster_store import QueryExecutor, RosterStore
from behaviors.tracker import ChannelTracker

ADMIN_MASK = "boss!b@admin.example"

DEFAULT_SETTINGS = {
    "core": {"admins": ["*!*@admin.example"]},
    "squire": {"scan_interval_minutes": 0},
}


class RecordingConnection(irc.client_aio.AioConnection):
    """An AioConnection that keeps outgoing lines instead of opening a transport."""

    def __init__(self, reactor):
        super().__init__(reactor)
        self.sent = []
        self.connect_kwargs = {}

    async def connect(self, server, port, nickname, **kwargs):
        self.buffer = self.buffer_class()
        self.handlers = {}
        self.real_server_name = ""
        self.real_nickname = nickname
        self.server = server
        self.port = port
        self.connect_kwargs = kwargs
        self.connected = True
        return self

    def send_raw(self, string):
        self.sent.append(string)

    def disconnect(self, message=""):
        if not self.connected:
            return
        del self.connected
        self.quit(message)
        self._handle_event(irc.client.Event("disconnect", self.server, "", [message]))

    def modes_sent(self):
        return [line for line in self.sent if line.startswith("MODE ")]

    def said(self, target: str):
        prefix = f"PRIVMSG {target} :"
        return [line[len(prefix):] for line in self.sent if line.startswith(prefix)]


class RecordingReactor(irc.client_aio.AioReactor):
    connection_class = RecordingConnection


def recording_factory(config, ctx):
    return RecordingReactor(loop=asyncio.get_running_loop()).server()


async def make_context(settings=None) -> BotContext:
    settings = settings if settings is not None else DEFAULT_SETTINGS
    executor = QueryExecutor(":memory:")
    await executor.open()
    store = RosterStore(executor)
    await store.initialize_schema()
    debug = DebugLogger()
    ctx = BotContext(
        settings=settings,
        store=store,
        debug=debug,
        bus=EventBus(log=debug.log),
        tracker=None,
        admins=AdminValidator.from_settings(settings),
    )
    ctx.tracker = ChannelTracker(ctx.bot_nick)
    return ctx


async def seed_roster(store: RosterStore, plugins=("squire", "admin"), channels=("#x",), nickserv_pw=""):
    await store.save_settings("irc.example.net", "castellan", nickserv_pw=nickserv_pw)
    for channel in channels:
        await store.add_channel(channel)
    for plugin in plugins:
        await store.enable_plugin(plugin)


async def feed(ctx: BotContext, *lines: str):
    """Push raw server lines through the library's line buffer and let every event settle."""
    for line in lines:
        ctx.connection.process_data(f"{line}\r\n".encode("utf-8"))
        await ctx.bus.drain()
