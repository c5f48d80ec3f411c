# behaviors/events.py
# Tagged bot events and the bus plugins subscribe through.

import asyncio
import inspect
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple


class EventKind(Enum):
    JOIN = "join"
    ACTIONABLE_MESSAGE = "actionable_message"
    ADDRESSED_COMMAND = "addressed_command"
    HOSTMASK_UPDATED = "hostmask_updated"
    ALL_HOSTMASKS_PROCESSED = "all_hostmasks_processed"
    MODE_CHANGE = "mode_change"


@dataclass(frozen=True)
class ActionableEvent:
    """An observed user in a channel, with the modes they hold there."""
    hostmask: Optional[str]
    nick: str
    channel: str
    modes: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class JoinEvent:
    nick: str
    channel: str
    hostmask: Optional[str]
    is_self: bool = False


@dataclass(frozen=True)
class BotCommand:
    """A message addressed to the bot, split into command and arguments."""
    nick: str
    hostmask: str
    channel: Optional[str]
    command: str
    args: Tuple[str, ...] = ()
    private: bool = False

    @property
    def reply_target(self) -> str:
        return self.nick if self.private or not self.channel else self.channel


@dataclass(frozen=True)
class HostmaskResolved:
    nick: str
    hostmask: str
    channels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HostmasksDrained:
    channel: Optional[str] = None


@dataclass(frozen=True)
class ModeChange:
    channel: str
    setter: str
    changes: Tuple[Tuple[str, str, Optional[str]], ...] = ()


@dataclass
class _Subscription:
    owner: str
    handler: Callable[[Any], Any]


class EventBus:
    """
    Dispatches typed payloads to subscribers.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and skipped; it never stops delivery to the other subscribers.
    """

    def __init__(self, log: Optional[Callable[[str], None]] = None):
        self._subscribers: Dict[EventKind, List[_Subscription]] = {kind: [] for kind in EventKind}
        self._log = log or (lambda message: None)
        self._tasks = set()

    def subscribe(self, kind: EventKind, handler: Callable[[Any], Any], owner: str = "core"):
        self._subscribers[kind].append(_Subscription(owner, handler))

    def unsubscribe_owner(self, owner: str) -> int:
        removed = 0
        for kind, subs in self._subscribers.items():
            kept = [sub for sub in subs if sub.owner != owner]
            removed += len(subs) - len(kept)
            self._subscribers[kind] = kept
        return removed

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subscribers[kind])

    async def dispatch(self, kind: EventKind, payload: Any):
        # Snapshot so a reload that resubscribes mid-dispatch cannot skip or repeat handlers
        for sub in list(self._subscribers[kind]):
            try:
                result = sub.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._log(f"[bus] {kind.value} handler from {sub.owner} failed: {e}\n{traceback.format_exc()}")

    def publish(self, kind: EventKind, payload: Any) -> asyncio.Task:
        """Schedule delivery on the running loop and return the task."""
        task = asyncio.get_running_loop().create_task(self.dispatch(kind, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        """Wait for every published event to finish delivery."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
