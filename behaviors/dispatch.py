# behaviors/dispatch.py
# Turns raw connection events into tracker updates and bus events.

import re
import traceback
from typing import Optional

import irc.modes

from .events import (
    EventKind, ActionableEvent, JoinEvent, BotCommand,
    HostmaskResolved, HostmasksDrained, ModeChange,
)
from .tracker import PREFIX_MODES, split_prefixes


def parse_addressed(text: str, bot_nick: str) -> Optional[str]:
    """'castellan: af bob' -> 'af bob' when addressed to `bot_nick`, else None."""
    match = re.match(rf"^\s*{re.escape(bot_nick)}\s*[:,]\s*(.+)$", text, re.IGNORECASE)
    return match.group(1).strip() if match else None


def full_hostmask(source) -> Optional[str]:
    """nick!user@host for a user source; None for servers and bare nicks."""
    if source is None or not source.user or not source.host:
        return None
    return str(source)


def make_command(nick: str, hostmask: str, channel: Optional[str], body: str, private: bool) -> Optional[BotCommand]:
    words = body.split()
    if not words:
        return None
    return BotCommand(
        nick=nick,
        hostmask=hostmask,
        channel=channel,
        command=words[0].lower(),
        args=tuple(words[1:]),
        private=private,
    )


class EventRouter:
    HANDLED = ("join", "part", "kick", "quit", "nick", "namreply", "whoreply",
               "endofwho", "mode", "pubmsg", "privmsg")

    def __init__(self, ctx):
        self.ctx = ctx

    @property
    def tracker(self):
        return self.ctx.tracker

    def attach(self, connection):
        for event_type in self.HANDLED:
            connection.add_global_handler(event_type, self._guarded(getattr(self, f"on_{event_type}")), -10)

    def _guarded(self, handler):
        # The reactor calls handlers from data_received; an exception there would drop the link
        def run(connection, event):
            try:
                handler(connection, event)
            except Exception as e:
                self.ctx.log_debug(f"[core] Error handling {event.type}: {e}\n{traceback.format_exc()}")
        return run

    def _publish(self, kind: EventKind, payload):
        self.ctx.bus.publish(kind, payload)

    # --- Membership ---

    def on_join(self, connection, event):
        channel, nick = event.target, event.source.nick
        is_self = nick.lower() == connection.get_nickname().lower()
        hostmask = full_hostmask(event.source)
        if is_self:
            self.tracker.add_channel(channel)
            self.tracker.add_member(channel, nick, hostmask)
            # Resolve everyone's hostmask; NAMES only gives nicks
            connection.who(channel)
        else:
            self.tracker.add_member(channel, nick, hostmask)
        self.ctx.log_debug(f"[core] JOIN {nick} -> {channel}")
        self._publish(EventKind.JOIN, JoinEvent(nick=nick, channel=channel, hostmask=hostmask, is_self=is_self))

    def on_part(self, connection, event):
        nick = event.source.nick
        if nick.lower() == connection.get_nickname().lower():
            self.tracker.remove_channel(event.target)
        else:
            self.tracker.remove_member(event.target, nick)

    def on_kick(self, connection, event):
        kicked = event.arguments[0] if event.arguments else ""
        if kicked.lower() == connection.get_nickname().lower():
            self.tracker.remove_channel(event.target)
        else:
            self.tracker.remove_member(event.target, kicked)

    def on_quit(self, connection, event):
        self.tracker.remove_everywhere(event.source.nick)

    def on_nick(self, connection, event):
        self.tracker.rename(event.source.nick, event.target)

    def on_namreply(self, connection, event):
        # arguments: [channel type, channel, "nick @op +voice"]
        if len(event.arguments) < 3:
            return
        channel = event.arguments[1]
        for name in event.arguments[2].split():
            nick, modes = split_prefixes(name)
            if nick:
                self.tracker.add_member(channel, nick, modes=modes)

    # --- Hostmask resolution ---

    def on_whoreply(self, connection, event):
        # arguments: [channel, user, host, server, nick, flags, "hops realname"]
        if len(event.arguments) < 6:
            return
        channel, user, host, _, nick, flags = event.arguments[:6]
        hostmask = f"{nick}!{user}@{host}"
        modes = {PREFIX_MODES[ch] for ch in flags if ch in PREFIX_MODES}
        if channel in ("*", "") or channel.lower() not in self.tracker.channels:
            changed = self.tracker.set_hostmask(nick, hostmask)
        else:
            self.tracker.add_member(channel, nick, modes=modes)
            changed = self.tracker.set_hostmask(nick, hostmask)
        if changed:
            self._publish(EventKind.HOSTMASK_UPDATED, HostmaskResolved(
                nick=nick, hostmask=hostmask, channels=tuple(self.tracker.channels_of(nick)),
            ))

    def on_endofwho(self, connection, event):
        target = event.arguments[0] if event.arguments else None
        self._publish(EventKind.ALL_HOSTMASKS_PROCESSED, HostmasksDrained(channel=target))

    # --- Modes ---

    def on_mode(self, connection, event):
        # arguments: ["+ov", "alice", "bob"]
        changes = [tuple(change) for change in irc.modes.parse_channel_modes(" ".join(event.arguments))]
        for sign, mode, param in changes:
            if param and mode in PREFIX_MODES.values():
                self.tracker.set_mode(event.target, param, mode, sign == "+")
        setter = event.source.nick if event.source else ""
        self._publish(EventKind.MODE_CHANGE, ModeChange(channel=event.target, setter=setter, changes=tuple(changes)))

    # --- Messages ---

    def on_pubmsg(self, connection, event):
        nick, channel = event.source.nick, event.target
        if nick.lower() == connection.get_nickname().lower():
            return
        text = event.arguments[0] if event.arguments else ""
        seen = full_hostmask(event.source)
        hostmask = seen or self.tracker.hostmask_for(nick)
        if seen and self.tracker.set_hostmask(nick, seen):
            self.ctx.log_debug(f"[core] Learned hostmask for {nick} from message")

        actionable = self.tracker.event_for(channel, nick) or ActionableEvent(
            hostmask=hostmask, nick=nick, channel=channel,
        )
        self._publish(EventKind.ACTIONABLE_MESSAGE, actionable)

        body = parse_addressed(text, connection.get_nickname())
        if body is not None:
            command = make_command(nick, hostmask or "", channel, body, private=False)
            if command is not None:
                self._publish(EventKind.ADDRESSED_COMMAND, command)

    def on_privmsg(self, connection, event):
        nick = event.source.nick
        text = event.arguments[0] if event.arguments else ""
        body = parse_addressed(text, connection.get_nickname()) or text
        command = make_command(nick, str(event.source), None, body, private=True)
        if command is not None:
            self._publish(EventKind.ADDRESSED_COMMAND, command)
