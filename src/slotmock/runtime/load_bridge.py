"""slotmock.runtime.load_bridge -- Forward module loads to the registry."""

from __future__ import annotations

import logging
import types
from typing import TYPE_CHECKING

from slotmock.base import SlotmockMeta

if TYPE_CHECKING:
    from slotmock.runtime.module_manager import ModuleManager
    from slotmock.runtime.registry import OverrideRegistry

logger = logging.getLogger(__name__)


class LoadEventBridge:
    """Subscribes a registry to a ModuleManager's load notifications.

    Every class created by SlotmockMeta that a newly loaded module defines
    (including nested classes) is passed to
    :meth:`OverrideRegistry.notify_type_loaded`, after which the registry
    rescans classes it has already processed, since an ``@impl`` module
    replaces methods of classes defined elsewhere.
    """

    def __init__(self, module_manager: ModuleManager, registry: OverrideRegistry) -> None:
        self._module_manager = module_manager
        self._registry = registry
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            return
        self._module_manager.subscribe(self.on_module_loaded)
        self._installed = True
        logger.debug("Load bridge installed")

    def uninstall(self) -> None:
        if not self._installed:
            return
        self._module_manager.unsubscribe(self.on_module_loaded)
        self._installed = False
        logger.debug("Load bridge uninstalled")

    def on_module_loaded(self, module: types.ModuleType) -> None:
        for cls in _compiled_types(module):
            self._registry.notify_type_loaded(cls)
        # The module may have filled in stubs of classes loaded earlier.
        self._registry.rescan()


def _compiled_types(module: types.ModuleType) -> list[type]:
    """Classes created by SlotmockMeta that *module* defines, outer first."""
    found: list[type] = []
    pending = [
        value for value in vars(module).values()
        if isinstance(value, SlotmockMeta) and value.__module__ == module.__name__
    ]
    while pending:
        cls = pending.pop(0)
        if cls in found:
            continue
        found.append(cls)
        pending.extend(
            value for value in vars(cls).values()
            if isinstance(value, SlotmockMeta) and value.__module__ == module.__name__
        )
    return found
