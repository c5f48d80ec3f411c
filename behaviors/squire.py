# behaviors/squire.py
# Grants or revokes channel modes for hostmasks on the friend/foe roster.
#
# Checks happen on joins, on every channel message, when a hostmask is
# resolved, after a WHO batch drains, on a timer, and on demand.

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import schedule

from .base import SimpleCommandPlugin
from .events import EventKind, ActionableEvent, BotCommand, HostmaskResolved, ModeChange
from .hostmask import match_any, first_match
from .roster_store import HostmaskEntry

GRANT = "grant"
REVOKE = "revoke"

# Mode used for subjects with no friend entry; nobody ever "holds" it, so
# non-friends always fall through to the foe check.
NOT_GRANTED = None


def setup(ctx):
    return Squire(ctx)


@dataclass(frozen=True)
class UpgradeDecision:
    should_act: bool
    mode: Optional[str] = None
    direction: Optional[str] = None


class Squire(SimpleCommandPlugin):
    name = "squire"
    version = "1.0.0"
    description = "Keeps friend/foe channel modes in line with the roster."

    def __init__(self, ctx):
        super().__init__(ctx)
        self.friends: Tuple[HostmaskEntry, ...] = ()
        self.foes: Tuple[HostmaskEntry, ...] = ()
        # (channel, nick, "+o") sent but not yet echoed back by the server
        self._pending: Set[Tuple[str, str, str]] = set()

    def _register_commands(self):
        self.register_command("af", self._cmd_add_friend, admin_only=True,
                              description="af <nick> [mode] - add a friend and grant their mode now.")
        self.register_command("rf", self._cmd_remove_friend, admin_only=True,
                              description="rf <nick> - disable a friend entry.")
        self.register_command("if", self._cmd_is_friend, admin_only=True,
                              description="if <nick> - is this user a friend?")
        self.register_command("scan", self._cmd_scan, admin_only=True,
                              description="scan - re-check every channel member now.")

    def subscriptions(self) -> Dict[EventKind, Callable[[Any], Any]]:
        subs = super().subscriptions()
        subs.update({
            EventKind.JOIN: self.on_join,
            EventKind.ACTIONABLE_MESSAGE: self.on_actionable,
            EventKind.HOSTMASK_UPDATED: self.on_hostmask_updated,
            EventKind.ALL_HOSTMASKS_PROCESSED: self.on_hostmasks_drained,
            EventKind.MODE_CHANGE: self.on_mode_change,
        })
        return subs

    async def on_load(self):
        await self.load_roster()
        interval = self.get_config_value("scan_interval_minutes", 10)
        if interval and interval > 0:
            schedule.every(interval).minutes.do(self._scheduled_scan).tag(self.name)
        self.scan()

    def on_unload(self):
        schedule.clear(self.name)

    async def load_roster(self):
        """Replace both sets wholesale from the store."""
        entries = await self.ctx.store.load_hostmasks()
        self.friends = tuple(entry for entry in entries if entry.is_friend)
        self.foes = tuple(entry for entry in entries if not entry.is_friend)
        self.log_debug(f"Roster loaded: {len(self.friends)} friends, {len(self.foes)} foes")

    async def reload(self):
        await self.load_roster()
        self.scan()

    # --- Classification ---

    def is_friend(self, hostmask: Optional[str]) -> bool:
        if not hostmask:
            return False
        friend = match_any(hostmask, [entry.hostmask for entry in self.friends])
        return friend or self.ctx.admins.is_admin(hostmask)

    def is_foe(self, hostmask: Optional[str]) -> bool:
        if not hostmask:
            return False
        return match_any(hostmask, [entry.hostmask for entry in self.foes])

    def mode_for(self, hostmask: Optional[str]) -> Optional[str]:
        """The mode a friend should hold, or NOT_GRANTED for everyone else."""
        if not hostmask:
            return NOT_GRANTED
        entry = first_match(hostmask, self.friends)
        if entry is not None:
            return entry.mode
        if self.ctx.admins.is_admin(hostmask):
            return self.get_config_value("admin_mode", "o")
        return NOT_GRANTED

    # --- Decision ---

    def is_upgradeable(self, event: ActionableEvent) -> bool:
        has_mask = isinstance(event.hostmask, str) and bool(event.hostmask)
        if not has_mask:
            return False
        if not self.ctx.tracker.bot_has_ops(event.channel):
            return False
        mode = self.mode_for(event.hostmask)
        has_mode_already = mode is not NOT_GRANTED and mode in event.modes
        return not has_mode_already

    def decisions(self, event: ActionableEvent) -> List[UpgradeDecision]:
        """
        The friend and foe checks are independent. The roster keeps the two
        sets disjoint, so in practice at most one of them fires.
        """
        found = []
        if self.is_friend(event.hostmask):
            mode = self.mode_for(event.hostmask)
            if mode:
                found.append(UpgradeDecision(True, mode, GRANT))
        foe = first_match(event.hostmask, self.foes) if self.is_foe(event.hostmask) else None
        # Revoking a mode they do not hold would be a wasted command
        if foe is not None and foe.mode in event.modes:
            found.append(UpgradeDecision(True, foe.mode, REVOKE))
        return found

    def perform_action(self, event: ActionableEvent) -> int:
        """Send the mode changes for `event`. Returns how many were sent."""
        sent = 0
        for decision in self.decisions(event):
            sign = "+" if decision.direction == GRANT else "-"
            if self.send_mode(event.channel, f"{sign}{decision.mode}", event.nick):
                self.log_debug(f"{decision.direction} {sign}{decision.mode} for {event.nick} in {event.channel}")
                sent += 1
        return sent

    def send_mode(self, channel: str, change: str, nick: str) -> bool:
        """Send MODE unless the same change is still waiting for the server's echo."""
        key = (channel.lower(), nick.lower(), change)
        if key in self._pending:
            return False
        self._pending.add(key)
        self.ctx.connection.mode(channel, f"{change} {nick}")
        return True

    def evaluate(self, event: Optional[ActionableEvent]) -> int:
        if event is None or self.ctx.tracker.is_bot(event.nick):
            return 0
        if not self.is_enabled(event.channel):
            return 0
        if self.is_upgradeable(event):
            return self.perform_action(event)
        return 0

    def scan(self) -> int:
        """Re-check every known member of every tracked channel."""
        if self.ctx.connection is None:
            return 0
        events = self.ctx.tracker.actionable_events()
        self.log_debug(f"Scanning {len(events)} members")
        sent = 0
        for event in events:
            try:
                sent += self.evaluate(event)
            except Exception as e:
                self.log_debug(f"Skipping {event.nick} in {event.channel}: {e}")
        return sent

    def _scheduled_scan(self):
        # A change the server never echoed is tried again
        self._pending.clear()
        self.scan()

    # --- Event handlers ---

    def on_join(self, payload):
        self.scan()

    def on_actionable(self, event: ActionableEvent):
        self.evaluate(event)

    def on_hostmask_updated(self, payload: HostmaskResolved):
        for channel in payload.channels:
            self.evaluate(self.ctx.tracker.event_for(channel, payload.nick))

    def on_hostmasks_drained(self, payload):
        self.scan()

    def on_mode_change(self, payload: ModeChange):
        for sign, mode, param in payload.changes:
            if param:
                self._pending.discard((payload.channel.lower(), param.lower(), f"{sign}{mode}"))

    # --- Commands ---

    def _resolve_target(self, command: BotCommand) -> Optional[dict]:
        if not command.args:
            self.safe_say(command.reply_target, self.message("usage", "Usage: {command} <nick>", command=command.command))
            return None
        target = command.args[0]
        user = self.ctx.tracker.get_nick(target)
        if not user or not user.get("hostmask"):
            self.safe_say(command.reply_target, self.message("unknown_user", "I don't know who {nick} is.", nick=target))
            return None
        return user

    async def _cmd_add_friend(self, command: BotCommand):
        user = self._resolve_target(command)
        if user is None:
            return True
        mode = command.args[1] if len(command.args) > 1 else self.get_config_value("default_friend_mode", "v")
        mode = mode.lstrip("+")

        # Grant right away, then persist
        if command.channel:
            self.send_mode(command.channel, f"+{mode}", user["nick"])
        await self.ctx.store.add_friend(user["hostmask"], mode, user["nick"])
        await self.reload()
        self.safe_say(command.reply_target, self.message("friend_added", "{nick} is now a friend.", nick=user["nick"]))
        return True

    async def _cmd_remove_friend(self, command: BotCommand):
        user = self._resolve_target(command)
        if user is None:
            return True
        # The granted mode is left in place; the next scan treats them as a non-friend
        removed = await self.ctx.store.disable_friend(user["hostmask"])
        if not removed:
            # Glob entries are not tied to one user; manage those in the database
            self.safe_say(command.reply_target, self.message(
                "no_entry", "{nick} has no friend entry of their own.", nick=user["nick"]))
            return True
        await self.reload()
        self.safe_say(command.reply_target, self.message("friend_removed", "{nick} is no longer a friend.", nick=user["nick"]))
        return True

    def _cmd_is_friend(self, command: BotCommand):
        user = self._resolve_target(command)
        if user is None:
            return True
        if self.is_friend(user["hostmask"]):
            self.safe_say(command.reply_target, self.message("is_friend_yes", "yes"))
        else:
            self.safe_say(command.reply_target, self.message("is_friend_no", "no"))
        return True

    def _cmd_scan(self, command: BotCommand):
        self._pending.clear()
        self.scan()
        self.safe_say(command.reply_target, self.message("scanning", "scanning!"))
        return True
