# behaviors/tracker.py
# Who is in which channel, with which modes, under which hostmask.

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .events import ActionableEvent

# Prefixes seen in NAMES and WHO replies, highest first
PREFIX_MODES = {"~": "q", "&": "a", "@": "o", "%": "h", "+": "v"}

# Modes that let the bot set other users' modes
OPERATOR_MODES = frozenset("oaq")


@dataclass
class Member:
    nick: str
    modes: Set[str] = field(default_factory=set)


@dataclass
class ChannelState:
    name: str
    members: Dict[str, Member] = field(default_factory=dict)


def split_prefixes(name: str):
    """'@+alice' -> ('alice', {'o', 'v'})"""
    modes = set()
    while name and name[0] in PREFIX_MODES:
        modes.add(PREFIX_MODES[name[0]])
        name = name[1:]
    return name, modes


class ChannelTracker:
    """
    Membership roster for every channel the bot sits in.

    Hostmasks are tracked per nick, not per channel, since one user has the
    same hostmask everywhere. A nick seen only through NAMES has no hostmask
    until a WHO reply or one of their own messages supplies it.
    """

    def __init__(self, bot_nick: Callable[[], str]):
        self._bot_nick = bot_nick
        self.channels: Dict[str, ChannelState] = {}
        self.hostmasks: Dict[str, str] = {}

    @staticmethod
    def _key(name: str) -> str:
        return name.lower()

    def is_bot(self, nick: str) -> bool:
        return self._key(nick) == self._key(self._bot_nick() or "")

    # --- Channels ---

    def add_channel(self, channel: str) -> ChannelState:
        state = self.channels.get(self._key(channel))
        if state is None:
            state = ChannelState(channel)
            self.channels[self._key(channel)] = state
        return state

    def remove_channel(self, channel: str):
        state = self.channels.pop(self._key(channel), None)
        if state is None:
            return
        for key in list(state.members):
            self._forget_if_unseen(key)

    def channel_names(self) -> List[str]:
        return [state.name for state in self.channels.values()]

    # --- Members ---

    def add_member(self, channel: str, nick: str, hostmask: Optional[str] = None, modes=()):
        state = self.add_channel(channel)
        member = state.members.get(self._key(nick))
        if member is None:
            member = Member(nick)
            state.members[self._key(nick)] = member
        member.modes.update(modes)
        if hostmask:
            self.hostmasks[self._key(nick)] = hostmask

    def remove_member(self, channel: str, nick: str):
        state = self.channels.get(self._key(channel))
        if state is not None:
            state.members.pop(self._key(nick), None)
        self._forget_if_unseen(self._key(nick))

    def remove_everywhere(self, nick: str) -> List[str]:
        left = []
        for state in self.channels.values():
            if state.members.pop(self._key(nick), None) is not None:
                left.append(state.name)
        self.hostmasks.pop(self._key(nick), None)
        return left

    def rename(self, old: str, new: str):
        old_key, new_key = self._key(old), self._key(new)
        for state in self.channels.values():
            member = state.members.pop(old_key, None)
            if member is not None:
                member.nick = new
                state.members[new_key] = member
        hostmask = self.hostmasks.pop(old_key, None)
        if hostmask and "!" in hostmask:
            self.hostmasks[new_key] = f"{new}!{hostmask.split('!', 1)[1]}"

    def _forget_if_unseen(self, key: str):
        if not any(key in state.members for state in self.channels.values()):
            self.hostmasks.pop(key, None)

    # --- Hostmasks ---

    def set_hostmask(self, nick: str, hostmask: str) -> bool:
        """Record a resolved hostmask. Returns True if it is new or changed."""
        key = self._key(nick)
        previous = self.hostmasks.get(key)
        self.hostmasks[key] = hostmask
        return previous != hostmask

    def hostmask_for(self, nick: str) -> Optional[str]:
        return self.hostmasks.get(self._key(nick))

    def channels_of(self, nick: str) -> List[str]:
        key = self._key(nick)
        return [state.name for state in self.channels.values() if key in state.members]

    def get_nick(self, nick: str) -> Optional[dict]:
        channels = self.channels_of(nick)
        hostmask = self.hostmask_for(nick)
        if not channels and hostmask is None:
            return None
        return {"nick": nick, "hostmask": hostmask, "channels": channels}

    # --- Modes ---

    def set_mode(self, channel: str, nick: str, mode: str, on: bool):
        state = self.channels.get(self._key(channel))
        if state is None:
            return
        member = state.members.get(self._key(nick))
        if member is None:
            return
        if on:
            member.modes.add(mode)
        else:
            member.modes.discard(mode)

    def modes_of(self, channel: str, nick: str) -> Set[str]:
        state = self.channels.get(self._key(channel))
        if state is None:
            return set()
        member = state.members.get(self._key(nick))
        return set(member.modes) if member else set()

    def has_mode(self, channel: str, nick: str, mode: str) -> bool:
        return mode in self.modes_of(channel, nick)

    def bot_has_ops(self, channel: str) -> bool:
        return bool(self.modes_of(channel, self._bot_nick() or "") & OPERATOR_MODES)

    # --- Actionable views ---

    def event_for(self, channel: str, nick: str) -> Optional[ActionableEvent]:
        state = self.channels.get(self._key(channel))
        if state is None:
            return None
        member = state.members.get(self._key(nick))
        if member is None:
            return None
        return ActionableEvent(
            hostmask=self.hostmask_for(member.nick),
            nick=member.nick,
            channel=state.name,
            modes=frozenset(member.modes),
        )

    def actionable_events(self) -> List[ActionableEvent]:
        """One event per known member per channel, the bot excluded."""
        events = []
        for state in list(self.channels.values()):
            for member in list(state.members.values()):
                if self.is_bot(member.nick):
                    continue
                events.append(ActionableEvent(
                    hostmask=self.hostmask_for(member.nick),
                    nick=member.nick,
                    channel=state.name,
                    modes=frozenset(member.modes),
                ))
        return events
