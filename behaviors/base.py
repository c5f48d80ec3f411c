# behaviors/base.py
# Base class for all castellan behavior plugins with common utilities and patterns

import random
import inspect
import functools
import traceback
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from .events import EventKind, BotCommand
from .exception_utils import handle_exceptions, AuthorizationDenied, CastellanException
from .roster_store import PluginRecord


def admin_required(func):
    """Decorator to require admin privileges for a command handler.

    Unauthorized calls are dropped without a reply.
    """
    @functools.wraps(func)
    async def wrapper(self, command: BotCommand, *args, **kwargs):
        try:
            self.ctx.admins.require_admin(command.hostmask, command.command)
        except AuthorizationDenied:
            return False
        result = func(self, command, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result
    return wrapper


class PluginBase(ABC):
    name = "base"
    version = "1.0.0"
    description = "Base plugin class"

    def __init__(self, ctx):
        self.ctx = ctx
        self._commands: Dict[str, Dict[str, Any]] = {}

    async def on_load(self) -> None:
        """Called after construction by the plugin manager. Override in subclasses."""
        pass

    def on_unload(self) -> None:
        """Called before the plugin is dropped or replaced."""
        pass

    def subscriptions(self) -> Dict[EventKind, Callable[[Any], Any]]:
        """Event kinds this plugin handles, mapped to their handlers."""
        return {}

    # --- Roster data ---

    @property
    def record(self) -> Optional[PluginRecord]:
        # Always a fresh read: a reload may have swapped the plugin map
        return self.ctx.config.plugins.get(self.name)

    def messages(self, key: str) -> List[str]:
        record = self.record
        if record is None:
            return []
        return list(record.messages.get(key, []))

    def message(self, key: str, default: str = "", **values) -> str:
        """Pick one of this plugin's templates for `key` and fill it in."""
        templates = self.messages(key)
        template = random.choice(templates) if templates else default
        try:
            return template.format(**values)
        except (KeyError, IndexError, ValueError):
            self.log_debug(f"Template '{key}' could not be formatted: {template!r}")
            return default.format(**values) if default else template

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """Read a value from this plugin's section of config.yaml."""
        section = self.ctx.section(self.name)
        value = section.get(key)
        return default if value is None else value

    def is_enabled(self, channel: Optional[str]) -> bool:
        """
        A plugin with no channel scope runs everywhere. Otherwise only in the
        channels listed for it in plugin_channels.
        """
        if channel is None:
            return True
        record = self.record
        if record is None:
            return False
        if not record.channels:
            return True
        return channel.lower() in {c.lower() for c in record.channels}

    # --- Command handling ---

    def register_command(self, name: str, handler: Callable, admin_only: bool = False,
                         description: str = "") -> None:
        self._commands[name.lower()] = {
            "handler": handler, "name": name.lower(),
            "admin_only": admin_only, "description": description,
        }

    async def _dispatch_commands(self, command: BotCommand) -> bool:
        cmd_info = self._commands.get(command.command.lower())
        if cmd_info is None:
            return False
        if not self.is_enabled(command.channel):
            return False
        if cmd_info["admin_only"]:
            try:
                self.ctx.admins.require_admin(command.hostmask, cmd_info["name"])
            except AuthorizationDenied:
                return False

        # Argument values stay out of the log; auth carries a password
        self.log_debug(f"Command '{cmd_info['name']}' from {command.nick} ({len(command.args)} args)")
        try:
            result = cmd_info["handler"](command)
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except CastellanException as e:
            self.log_debug(f"Command {cmd_info['name']} failed: {e}")
            self.safe_say(command.reply_target, e.user_message)
        except Exception as e:
            self.log_debug(f"Unexpected error in command {cmd_info['name']}: {e}\n{traceback.format_exc()}")
        return False

    # --- Output ---

    @handle_exceptions(error_message="Failed to send message")
    def safe_say(self, target: str, text: str) -> bool:
        connection = self.ctx.connection
        if connection is None:
            return False
        lines = text.splitlines() or [text]
        for line in lines:
            sanitized = line.replace("\r", "") or " "
            connection.privmsg(target, sanitized)
        return True

    def log_debug(self, message: str):
        self.ctx.log_debug(f"[{self.name}] {message}")


class SimpleCommandPlugin(PluginBase):
    def __init__(self, ctx):
        super().__init__(ctx)
        self._register_commands()

    @abstractmethod
    def _register_commands(self) -> None:
        """Abstract method to be overridden in subclasses."""
        pass

    def subscriptions(self) -> Dict[EventKind, Callable[[Any], Any]]:
        return {EventKind.ADDRESSED_COMMAND: self._dispatch_commands}
