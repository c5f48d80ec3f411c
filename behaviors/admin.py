# behaviors/admin.py
# Administrative bot controls: hot reload, plugin listing, channel control.
from typing import Any

from .base import SimpleCommandPlugin, admin_required
from .events import BotCommand
from .exception_utils import ReloadInProgress


def setup(ctx: Any) -> "Admin":
    return Admin(ctx)


class Admin(SimpleCommandPlugin):
    name = "admin"
    version = "1.0.0"
    description = "Administrative bot controls."

    def _register_commands(self):
        self.register_command("reload", self._cmd_reload, admin_only=True,
                              description="Reload plugins and their messages from the database.")
        self.register_command("plugins", self._cmd_list_plugins, admin_only=True,
                              description="List loaded plugins.")
        self.register_command("join", self._cmd_join, admin_only=True, description="join <#channel>")
        self.register_command("part", self._cmd_part, admin_only=True, description="part <#channel> [message]")
        self.register_command("say", self._cmd_say, admin_only=True, description="say <#channel> <message>")
        self.register_command("debug", self._cmd_debug, admin_only=True, description="debug <on|off> [plugin]")
        self.register_command("auth", self._cmd_auth, description="auth <password> (private message only)")
        self.register_command("help", self._cmd_help, admin_only=True, description="List admin commands.")

    async def _cmd_reload(self, command: BotCommand):
        if not self.ctx.admins.is_super_admin(command.nick, command.hostmask):
            self.safe_say(command.reply_target, self.message(
                "auth_required", "Reload needs a super admin session. /msg me auth <password> first."))
            return True
        try:
            result = await self.ctx.configurator.reload(command.reply_target)
        except ReloadInProgress as e:
            self.safe_say(command.reply_target, e.user_message)
            return True
        self.log_debug(f"Reload requested by {command.nick}: {'ok' if result.succeeded else result.error}")
        return True

    def _cmd_list_plugins(self, command: BotCommand):
        loaded = sorted(self.ctx.plugins.plugins.keys())
        self.safe_say(command.reply_target, f"Loaded plugins ({len(loaded)}): {', '.join(loaded)}")
        return True

    def _cmd_join(self, command: BotCommand):
        if not command.args:
            return False
        self.ctx.connection.join(command.args[0])
        return True

    def _cmd_part(self, command: BotCommand):
        if not command.args:
            return False
        room = command.args[0]
        if room.lower() not in self.ctx.tracker.channels:
            self.safe_say(command.reply_target, f"I am not in {room}.")
            return True
        self.ctx.connection.part(room, " ".join(command.args[1:]) or "Leaving per request.")
        return True

    def _cmd_say(self, command: BotCommand):
        if len(command.args) < 2:
            return False
        self.safe_say(command.args[0], " ".join(command.args[1:]))
        return True

    def _cmd_debug(self, command: BotCommand):
        if not command.args:
            return False
        state_bool = command.args[0].lower() in ['on', 'true', '1', 'enable']
        if len(command.args) > 1:
            plugin_name = command.args[1]
            if plugin_name not in self.ctx.plugins.plugins:
                self.safe_say(command.reply_target, f"Plugin '{plugin_name}' is not loaded.")
                return True
            self.ctx.debug.set_module_debug(plugin_name, state_bool)
            self.safe_say(command.reply_target, f"Debug mode for '{plugin_name}' is now {'ON' if state_bool else 'OFF'}.")
        else:
            self.ctx.debug.set_debug_mode(state_bool)
            self.safe_say(command.reply_target, f"Debug mode is now {'ON' if state_bool else 'OFF'}.")
        return True

    @admin_required
    def _cmd_auth(self, command: BotCommand):
        # Never accept a password said in a channel
        if not command.private or not command.args:
            return False
        password = " ".join(command.args)
        if self.ctx.admins.authenticate_super_admin(command.nick, command.hostmask, password):
            self.safe_say(command.nick, f"Super admin session opened for {self.ctx.admins.session_hours}h.")
        else:
            self.safe_say(command.nick, "Authentication failed.")
        return True

    def _cmd_help(self, command: BotCommand):
        for info in self._commands.values():
            self.safe_say(command.nick, f"{info['name']}: {info['description']}")
        return True
