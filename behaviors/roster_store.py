# behaviors/roster_store.py
# SQLite-backed roster: bot settings, channels, plugins, messages and the
# squire's friend/foe hostmasks.

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import aiosqlite

from .exception_utils import StoreUnavailable, StoreSchemaError, StoreWriteError


@dataclass(frozen=True)
class HostmaskEntry:
    hostmask: str
    mode: str
    is_friend: bool


@dataclass
class PluginRecord:
    id: int
    filename: str
    enabled: bool = True
    channels: Tuple[str, ...] = ()
    messages: Dict[str, List[str]] = field(default_factory=dict)


SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS config (
        username TEXT,
        realname TEXT,
        server TEXT NOT NULL,
        nick TEXT NOT NULL,
        nickserv_pw TEXT DEFAULT ''
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS channels (
        name TEXT PRIMARY KEY,
        enabled INTEGER NOT NULL DEFAULT 1
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS plugins (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT NOT NULL UNIQUE,
        enabled INTEGER NOT NULL DEFAULT 1
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS plugin_channels (
        plugin_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1,
        UNIQUE(plugin_id, name),
        FOREIGN KEY (plugin_id) REFERENCES plugins(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS plugin_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        plugin_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        message TEXT NOT NULL,
        FOREIGN KEY (plugin_id) REFERENCES plugins(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS squire_hostmasks (
        hostmask TEXT PRIMARY KEY,
        mode TEXT NOT NULL DEFAULT 'v',
        nick TEXT,
        is_friend INTEGER NOT NULL DEFAULT 1,
        enabled INTEGER NOT NULL DEFAULT 1
    )
    ''',
]


def _classify(error: Exception, message: str) -> Exception:
    text = str(error).lower()
    if isinstance(error, sqlite3.OperationalError) and ("no such table" in text or "no such column" in text):
        return StoreSchemaError(f"{message}: {error}")
    return StoreUnavailable(f"{message}: {error}")


class QueryExecutor:
    """A single aiosqlite connection. Every call is one round trip."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self):
        if self._conn is not None:
            return
        try:
            self._conn = await aiosqlite.connect(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"Could not open database {self.db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row

    async def close(self):
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreUnavailable(f"Database {self.db_path} is not open")
        return self._conn

    async def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = self._require()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise _classify(e, "Query failed") from e
        return [dict(row) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self._require()
        try:
            cursor = await conn.execute(sql, tuple(params))
            await conn.commit()
        except sqlite3.Error as e:
            raise StoreWriteError(f"Write failed: {e}") from e
        return cursor.rowcount

    async def executescript(self, statements: Iterable[str]):
        conn = self._require()
        try:
            for statement in statements:
                await conn.execute(statement)
            await conn.commit()
        except sqlite3.Error as e:
            raise StoreWriteError(f"Schema setup failed: {e}") from e


def _require_fields(rows: List[Dict[str, Any]], fields: Iterable[str], source: str):
    fields = tuple(fields)
    for row in rows:
        missing = [name for name in fields if name not in row]
        if missing:
            raise StoreSchemaError(f"{source} rows are missing {', '.join(missing)}")


class RosterStore:
    """Typed reads and writes over the roster tables."""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    async def initialize_schema(self):
        await self.executor.executescript(SCHEMA)

    async def load_settings(self) -> Optional[Dict[str, Any]]:
        rows = await self.executor.query(
            "SELECT username, realname, server, nick, nickserv_pw AS nickserv_password FROM config LIMIT 1"
        )
        _require_fields(rows, ("server", "nick"), "config")
        return rows[0] if rows else None

    async def load_channels(self) -> Set[str]:
        rows = await self.executor.query("SELECT name FROM channels WHERE enabled = 1")
        _require_fields(rows, ("name",), "channels")
        return {row["name"] for row in rows}

    async def load_plugin_channels(self) -> Dict[int, List[str]]:
        rows = await self.executor.query(
            "SELECT plugin_id, name FROM plugin_channels WHERE enabled = 1 ORDER BY plugin_id, name"
        )
        _require_fields(rows, ("plugin_id", "name"), "plugin_channels")
        scope: Dict[int, List[str]] = {}
        for row in rows:
            scope.setdefault(row["plugin_id"], []).append(row["name"])
        return scope

    async def load_plugin_roster(self, channel_scope: Optional[Mapping[int, Sequence[str]]] = None) -> List[PluginRecord]:
        rows = await self.executor.query(
            "SELECT id, filename, enabled FROM plugins WHERE enabled = 1 ORDER BY id"
        )
        _require_fields(rows, ("id", "filename", "enabled"), "plugins")
        channel_scope = channel_scope or {}
        return [
            PluginRecord(
                id=row["id"],
                filename=row["filename"],
                enabled=bool(row["enabled"]),
                channels=tuple(channel_scope.get(row["id"], ())),
            )
            for row in rows
        ]

    async def load_plugin_messages(self) -> List[Tuple[str, str, str]]:
        rows = await self.executor.query(
            "SELECT p.filename AS plugin, pm.name AS name, pm.message AS message "
            "FROM plugin_messages pm JOIN plugins p ON p.id = pm.plugin_id "
            "WHERE p.enabled = 1 ORDER BY p.id, pm.id"
        )
        _require_fields(rows, ("plugin", "name", "message"), "plugin_messages")
        return [(row["plugin"], row["name"], row["message"]) for row in rows]

    async def load_hostmasks(self) -> List[HostmaskEntry]:
        rows = await self.executor.query(
            "SELECT hostmask, mode, is_friend FROM squire_hostmasks WHERE enabled = 1 ORDER BY rowid"
        )
        _require_fields(rows, ("hostmask", "mode", "is_friend"), "squire_hostmasks")
        return [
            HostmaskEntry(hostmask=row["hostmask"], mode=row["mode"], is_friend=row["is_friend"] == 1)
            for row in rows
        ]

    async def add_friend(self, hostmask: str, mode: str, nick: str):
        await self.executor.execute(
            "INSERT INTO squire_hostmasks (hostmask, mode, nick, is_friend, enabled) VALUES (?, ?, ?, 1, 1) "
            "ON CONFLICT(hostmask) DO UPDATE SET mode = excluded.mode, nick = excluded.nick, "
            "is_friend = 1, enabled = 1",
            (hostmask, mode, nick),
        )

    async def disable_friend(self, hostmask: str) -> int:
        return await self.executor.execute(
            "UPDATE squire_hostmasks SET enabled = 0 WHERE hostmask = ?",
            (hostmask,),
        )

    # --- Setup helpers used by init_db.py ---

    async def save_settings(self, server: str, nick: str, username: str = "", realname: str = "", nickserv_pw: str = ""):
        await self.executor.execute("DELETE FROM config")
        await self.executor.execute(
            "INSERT INTO config (username, realname, server, nick, nickserv_pw) VALUES (?, ?, ?, ?, ?)",
            (username, realname, server, nick, nickserv_pw),
        )

    async def add_channel(self, name: str):
        await self.executor.execute(
            "INSERT INTO channels (name, enabled) VALUES (?, 1) ON CONFLICT(name) DO UPDATE SET enabled = 1",
            (name,),
        )

    async def enable_plugin(self, filename: str):
        await self.executor.execute(
            "INSERT INTO plugins (filename, enabled) VALUES (?, 1) ON CONFLICT(filename) DO UPDATE SET enabled = 1",
            (filename,),
        )

    async def scope_plugin(self, filename: str, channel: str) -> int:
        return await self.executor.execute(
            "INSERT INTO plugin_channels (plugin_id, name, enabled) "
            "SELECT id, ?, 1 FROM plugins WHERE filename = ? "
            "ON CONFLICT(plugin_id, name) DO UPDATE SET enabled = 1",
            (channel, filename),
        )

    async def add_foe(self, hostmask: str, mode: str, nick: str = ""):
        await self.executor.execute(
            "INSERT INTO squire_hostmasks (hostmask, mode, nick, is_friend, enabled) VALUES (?, ?, ?, 0, 1) "
            "ON CONFLICT(hostmask) DO UPDATE SET mode = excluded.mode, nick = excluded.nick, "
            "is_friend = 0, enabled = 1",
            (hostmask, mode, nick),
        )

    async def add_plugin_message(self, filename: str, name: str, message: str):
        await self.executor.execute(
            "INSERT INTO plugin_messages (plugin_id, name, message) "
            "SELECT id, ?, ? FROM plugins WHERE filename = ?",
            (name, message, filename),
        )
