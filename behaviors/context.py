# behaviors/context.py
# Runtime configuration and the context object handed to every component.

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .debug_log import DebugLogger
from .events import EventBus
from .roster_store import PluginRecord, RosterStore
from .tracker import ChannelTracker

DEFAULT_PORT = 6667


def split_server(server: str) -> Tuple[str, int]:
    """'irc.example.net:6697' -> ('irc.example.net', 6697)"""
    host, sep, port = (server or "").rpartition(":")
    if sep and port.isdigit() and host:
        return host, int(port)
    return server, DEFAULT_PORT


@dataclass
class RuntimeConfig:
    server: str = ""
    port: int = DEFAULT_PORT
    nick: str = ""
    username: str = ""
    realname: str = ""
    nickserv_password: str = ""
    channels: Tuple[str, ...] = ()
    plugins: Dict[str, PluginRecord] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, row: Dict[str, Any]) -> "RuntimeConfig":
        host, port = split_server(row.get("server") or "")
        nick = row.get("nick") or ""
        return cls(
            server=host,
            port=port,
            nick=nick,
            username=row.get("username") or nick,
            realname=row.get("realname") or nick,
            nickserv_password=row.get("nickserv_password") or "",
        )


@dataclass
class BotContext:
    """
    Everything a component needs, passed explicitly at init and reload.

    `config.plugins` is swapped wholesale by a reload, so code that awaits
    must read it again afterwards instead of holding on to an old copy.
    """
    settings: Dict[str, Any]
    store: RosterStore
    debug: DebugLogger
    bus: EventBus
    tracker: ChannelTracker
    admins: Any
    config: RuntimeConfig = field(default_factory=RuntimeConfig)
    connection: Any = None
    plugins: Any = None
    configurator: Any = None

    def log_debug(self, message: str):
        self.debug.log(message)

    def bot_nick(self) -> str:
        # The library only learns the nick once connect() has run
        if self.connection is not None and self.connection.is_connected():
            return self.connection.get_nickname()
        return self.config.nick

    def section(self, name: str) -> Dict[str, Any]:
        value = self.settings.get(name) or {}
        return value if isinstance(value, dict) else {}

    def plugin_record(self, name: str) -> Optional[PluginRecord]:
        return self.config.plugins.get(name)
