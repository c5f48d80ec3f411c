#!/usr/bin/env python3
# castellan.py: IRC channel steward core

import sys
import signal
import shutil
import asyncio
import traceback
import random
from pathlib import Path

import schedule

from config_validator import load_and_validate_config
from behaviors.admin_validator import AdminValidator
from behaviors.configurator import Configurator
from behaviors.context import BotContext
from behaviors.debug_log import DebugLogger
from behaviors.events import EventBus
from behaviors.exception_utils import ConfigurationIncomplete, StoreException
from behaviors.roster_store import QueryExecutor, RosterStore
from behaviors.tracker import ChannelTracker

ROOT = Path(__file__).resolve().parent

# --- Self-Contained Path Configuration ---
CONFIG_DIR = ROOT / "config"
CONFIG_PATH = CONFIG_DIR / "config.yaml"
CONFIG_DEFAULT_PATH = ROOT / "config.yaml.default"

QUIT_MESSAGES = [
    "The gate is closed for now.",
    "Off to walk the walls. Back shortly.",
    "Changing of the guard.",
]


def build_context(config: dict) -> BotContext:
    """Assemble the context every component receives. Nothing global."""
    core = config.get("core", {})
    log_file = core.get("debug_log_file", "debug.log")
    debug = DebugLogger(ROOT / log_file, debug_mode=core.get("debug_mode_on_startup", False))

    db_path = Path(config.get("database", {}).get("path", "config/castellan.db"))
    if not db_path.is_absolute():
        db_path = ROOT / db_path
    store = RosterStore(QueryExecutor(db_path))

    ctx = BotContext(
        settings=config,
        store=store,
        debug=debug,
        bus=EventBus(log=debug.log),
        tracker=None,
        admins=AdminValidator.from_settings(config),
    )
    ctx.tracker = ChannelTracker(ctx.bot_nick)
    return ctx


async def run_scheduler():
    while True:
        schedule.run_pending()
        await asyncio.sleep(1)


async def shutdown(ctx: BotContext):
    ctx.log_debug("[core] shutting down...")
    if ctx.plugins is not None:
        ctx.plugins.unload_all()
    if ctx.connection is not None and ctx.connection.is_connected():
        quit_msg = random.choice(QUIT_MESSAGES)
        ctx.log_debug(f"[core] Sending QUIT message to IRC server: {quit_msg}")
        ctx.connection.disconnect(quit_msg)
    await ctx.store.executor.close()
    ctx.log_debug("[core] Shutdown complete")


def wait_for_disconnect(connection) -> asyncio.Future:
    """A future that resolves when the reactor reports the link is gone."""
    closed = asyncio.get_running_loop().create_future()

    def on_disconnect(conn, event):
        if not closed.done():
            closed.set_result(event.arguments[0] if event.arguments else "")

    connection.add_global_handler("disconnect", on_disconnect)
    if not connection.is_connected():
        closed.set_result("not connected")
    return closed


async def run(config: dict) -> int:
    ctx = build_context(config)
    configurator = Configurator(ctx)

    try:
        await ctx.store.executor.open()
        await ctx.store.initialize_schema()
        await configurator.bootstrap()
    except (ConfigurationIncomplete, StoreException) as e:
        # No partial start: every plugin assumes the config is complete
        ctx.debug.always(f"[boot] CRITICAL: startup aborted: {e}")
        ctx.log_debug(traceback.format_exc())
        await ctx.store.executor.close()
        return 1

    print(f"[boot] Connected to {ctx.config.server}:{ctx.config.port} as {ctx.config.nick}", file=sys.stderr)
    print(f"[boot] Channels: {', '.join(ctx.config.channels)}", file=sys.stderr)
    print(f"[boot] Plugins: {', '.join(ctx.config.plugins)}", file=sys.stderr)

    loop = asyncio.get_running_loop()
    # irc.client_aio reads on the loop through its protocol; we only wait for the link to drop
    closed = wait_for_disconnect(ctx.connection)
    scheduler = loop.create_task(run_scheduler())

    def on_exit():
        if not closed.done():
            closed.set_result("signal")

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_exit)
        except NotImplementedError:
            pass

    try:
        reason = await closed
        ctx.log_debug(f"[core] Main loop finished: {reason}")
    finally:
        scheduler.cancel()
        await ctx.bus.drain()
        await shutdown(ctx)
    return 0


def main():
    if not CONFIG_PATH.exists() and CONFIG_DEFAULT_PATH.exists():
        print(f"[boot] Creating default config from {CONFIG_DEFAULT_PATH}...", file=sys.stderr)
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(CONFIG_DEFAULT_PATH, CONFIG_PATH)
        print("\n--- FIRST RUN SETUP COMPLETE ---", file=sys.stderr)
        print(f"A default configuration has been created at: {CONFIG_PATH}", file=sys.stderr)
        print("Set database.path and core.admins, then run 'python3 init_db.py --help'", file=sys.stderr)
        print("to put the server, channels and plugins into the database.", file=sys.stderr)
        sys.exit(0)

    print("[boot] Validating and loading configuration...", file=sys.stderr)
    config, success = load_and_validate_config(CONFIG_PATH)
    if not success:
        print("[boot] CRITICAL: Configuration validation failed. Please fix the errors above.", file=sys.stderr)
        print("Run 'python3 config_validator.py config/config.yaml' for detailed validation.", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run(config)))


if __name__ == "__main__":
    main()
