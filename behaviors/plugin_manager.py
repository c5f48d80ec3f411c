# behaviors/plugin_manager.py
# Loads behavior plugins named in the roster and wires their subscriptions.

import sys
import traceback
import importlib.util
from pathlib import Path
from typing import Dict, List, Mapping

from .roster_store import PluginRecord

BEHAVIORS_DIR = Path(__file__).resolve().parent

# Plugin results reported back after a reload
LOADED = "loaded"
RELOADED = "reloaded"
UNLOADED = "unloaded"
FAILED = "failed"


class PluginManager:
    def __init__(self, ctx, plugin_dir: Path = BEHAVIORS_DIR):
        self.ctx = ctx
        self.plugin_dir = Path(plugin_dir)
        self.plugins = {}

    def unload_all(self) -> List[str]:
        names = list(self.plugins.keys())
        for name in names:
            self.unload_module(name)
        return names

    async def load_all(self, plugin_map: Mapping[str, PluginRecord]) -> Dict[str, str]:
        """Load every enabled plugin in `plugin_map`. Returns name -> result."""
        results = {}
        for name, record in plugin_map.items():
            if not record.enabled:
                continue
            results[name] = LOADED if await self.load_module(name) else FAILED
        return results

    async def reload_all(self, plugin_map: Mapping[str, PluginRecord]) -> Dict[str, str]:
        """
        Drop every loaded plugin and initialise the enabled ones in
        `plugin_map` from a fresh copy of their code.
        """
        previous = set(self.unload_all())
        results = {}
        for name, record in plugin_map.items():
            if not record.enabled:
                continue
            if await self.load_module(name):
                results[name] = RELOADED if name in previous else LOADED
            else:
                results[name] = FAILED
        for name in previous - set(results):
            results[name] = UNLOADED
        return results

    def unload_module(self, name: str) -> bool:
        """Unloads a single plugin by name."""
        if name not in self.plugins:
            return False
        obj = self.plugins.pop(name)
        try:
            obj.on_unload()
        except Exception as e:
            self.ctx.log_debug(f"[plugins] error unloading {name}: {e}")
        self.ctx.bus.unsubscribe_owner(name)
        self.ctx.log_debug(f"[plugins] Unloaded plugin: {name}")
        return True

    async def load_module(self, name: str) -> bool:
        """Loads a single plugin by its roster filename."""
        if name in self.plugins or name in ("__init__", "base"):
            return False

        py_path = self.plugin_dir / f"{name}.py"
        if not py_path.exists():
            self.ctx.log_debug(f"[plugins] FAILED to load {name}: file not found at {py_path}")
            return False

        try:
            spec = importlib.util.spec_from_file_location(f"behaviors.{name}", py_path)
            mod = importlib.util.module_from_spec(spec)
            sys.modules[f"behaviors.{name}"] = mod
            spec.loader.exec_module(mod)
            if not hasattr(mod, "setup"):
                self.ctx.log_debug(f"[plugins] FAILED to load {name}: no setup() function")
                return False

            instance = mod.setup(self.ctx)
            if not instance:
                return False
            for kind, handler in instance.subscriptions().items():
                self.ctx.bus.subscribe(kind, handler, owner=name)
            self.plugins[name] = instance
            await instance.on_load()
            self.ctx.log_debug(f"[plugins] Loaded plugin: {name}")
            return True
        except Exception as e:
            self.ctx.bus.unsubscribe_owner(name)
            self.plugins.pop(name, None)
            self.ctx.log_debug(f"[plugins] FAILED to load {name}: {e}\n{traceback.format_exc()}")
        return False
