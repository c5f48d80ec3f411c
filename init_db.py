#!/usr/bin/env python3
"""
Set up castellan's roster database.

  python3 init_db.py settings irc.libera.chat:6697 castellan --nickserv-pw ${PW}
  python3 init_db.py channel "#home" "#lobby"
  python3 init_db.py plugin squire --channel "#home"
  python3 init_db.py plugin admin
  python3 init_db.py message squire friend_added "{nick} is now under my protection."
  python3 init_db.py foe "*!*@spam.example.com" --mode v

Every command creates the schema first, so a fresh file works. The database
path comes from config/config.yaml unless --db is given.
"""

import sys
import asyncio
import argparse
from pathlib import Path

import yaml

from behaviors.exception_utils import StoreException
from behaviors.roster_store import QueryExecutor, RosterStore

ROOT = Path(__file__).resolve().parent
DEFAULT_CONFIG = ROOT / "config" / "config.yaml"


def database_path(args) -> Path:
    if args.db:
        return Path(args.db)
    try:
        with open(args.config, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        sys.exit(f"No --db given and {args.config} does not exist.")
    path = Path((config.get("database") or {}).get("path") or "config/castellan.db")
    return path if path.is_absolute() else ROOT / path


async def apply(store: RosterStore, args) -> str:
    await store.initialize_schema()

    if args.command == "init":
        return "Schema is in place."
    if args.command == "settings":
        await store.save_settings(args.server, args.nick, args.username or "", args.realname or "", args.nickserv_pw or "")
        return f"Bot settings saved: {args.nick} on {args.server}"
    if args.command == "channel":
        for name in args.names:
            await store.add_channel(name)
        return f"Enabled channels: {', '.join(args.names)}"
    if args.command == "plugin":
        await store.enable_plugin(args.filename)
        for channel in args.channel or ():
            await store.scope_plugin(args.filename, channel)
        scope = f" in {', '.join(args.channel)}" if args.channel else " everywhere"
        return f"Enabled plugin {args.filename}{scope}"
    if args.command == "message":
        await store.add_plugin_message(args.plugin, args.name, args.text)
        return f"Added {args.plugin}/{args.name} template"
    if args.command == "friend":
        await store.add_friend(args.hostmask, args.mode.lstrip("+"), args.nick or "")
        return f"Friend {args.hostmask} gets +{args.mode.lstrip('+')}"
    if args.command == "foe":
        await store.add_foe(args.hostmask, args.mode.lstrip("+"), args.nick or "")
        return f"Foe {args.hostmask} loses +{args.mode.lstrip('+')}"
    raise ValueError(f"Unknown command {args.command}")


async def run(args) -> int:
    executor = QueryExecutor(database_path(args))
    try:
        await executor.open()
        print(await apply(RosterStore(executor), args))
        return 0
    except StoreException as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1
    finally:
        await executor.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Populate the castellan roster database")
    parser.add_argument("--db", help="SQLite file to write (default: database.path from config.yaml)")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="config.yaml to read database.path from")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the tables and exit")

    settings = sub.add_parser("settings", help="Set the server and nick")
    settings.add_argument("server", help="host or host:port")
    settings.add_argument("nick")
    settings.add_argument("--username")
    settings.add_argument("--realname")
    settings.add_argument("--nickserv-pw")

    channel = sub.add_parser("channel", help="Enable one or more channels")
    channel.add_argument("names", nargs="+")

    plugin = sub.add_parser("plugin", help="Enable a plugin by its behaviors/ filename")
    plugin.add_argument("filename")
    plugin.add_argument("--channel", action="append", help="Limit the plugin to this channel (repeatable)")

    message = sub.add_parser("message", help="Add a message template for a plugin")
    message.add_argument("plugin")
    message.add_argument("name")
    message.add_argument("text")

    for kind in ("friend", "foe"):
        entry = sub.add_parser(kind, help=f"Add a {kind} hostmask")
        entry.add_argument("hostmask", help="nick!user@host glob")
        entry.add_argument("--mode", default="v", help="channel mode letter (default: v)")
        entry.add_argument("--nick")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
