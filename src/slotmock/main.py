"""slotmock.main -- Configuration and session assembly."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from slotmock.base import SlotmockMeta
from slotmock.runtime.impl_loader import ImplLoader
from slotmock.runtime.load_bridge import LoadEventBridge
from slotmock.runtime.module_manager import ModuleManager
from slotmock.runtime.registry import OverrideRegistry
from slotmock.session import MockSession

logger = logging.getLogger(__name__)

_builtins_loaded = False

_DEFAULT_LOG_LEVEL = "WARNING"
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_builtins() -> None:
    """Load all builtin .impl.py files. Safe to call multiple times."""
    global _builtins_loaded
    if _builtins_loaded:
        return
    builtins_dir = Path(__file__).parent / "builtins"
    loader = ImplLoader()
    loader.load_all(builtins_dir, "slotmock.builtins")
    _builtins_loaded = True


def load_config() -> dict[str, Any]:
    """Load configuration from slotmock.json (fallback) then environment variables (override).

    slotmock.json format:
        { "env": { "SLOTMOCK_LOG_LEVEL": "DEBUG", ... } }

    Returns:
        Dict with keys: log_level, watch_loads.
    """
    file_env: dict[str, str] = {}
    config_path = Path("slotmock.json")
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
            file_env = data.get("env", {})
        except (json.JSONDecodeError, AttributeError):
            pass

    def _get(var_name: str, default: str = "") -> str:
        """Env var > slotmock.json > default."""
        return os.environ.get(var_name) or str(file_env.get(var_name, "")) or default

    return {
        "log_level": _get("SLOTMOCK_LOG_LEVEL", _DEFAULT_LOG_LEVEL).upper(),
        "watch_loads": _get("SLOTMOCK_WATCH_LOADS", "1").strip().lower() not in _FALSE_VALUES,
    }


def configure_logging(level: str | int = _DEFAULT_LOG_LEVEL) -> logging.Logger:
    """Attach a stream handler to the ``slotmock`` logger (once) and set its level."""
    root = logging.getLogger("slotmock")
    root.setLevel(level)
    if not any(h.get_name() == "slotmock" for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name("slotmock")
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    return root


def create_session(
    module_manager: ModuleManager | None = None,
    watch_loads: bool | None = None,
) -> MockSession:
    """Create a fully assembled MockSession.

    This loads the builtin .impl.py files (if not already loaded), applies
    the configured log level, builds an OverrideRegistry over the shared
    type catalog, and subscribes it to *module_manager*'s load
    notifications unless *watch_loads* is false.

    Args:
        module_manager: Loader to watch. A new ModuleManager if omitted.
        watch_loads: Install the load bridge. Defaults to the
            ``SLOTMOCK_WATCH_LOADS`` setting.

    Returns:
        A ready-to-use MockSession. Call ``close()`` when done.
    """
    load_builtins()

    config = load_config()
    configure_logging(config["log_level"])
    if watch_loads is None:
        watch_loads = config["watch_loads"]
    if module_manager is None:
        module_manager = ModuleManager()

    registry = OverrideRegistry(SlotmockMeta.catalog)
    bridge = LoadEventBridge(module_manager, registry)
    if watch_loads:
        bridge.install()

    logger.info("Mock session started (watch_loads=%s)", watch_loads)
    return MockSession(registry=registry, module_manager=module_manager, bridge=bridge)
