"""slotmock.runtime - Interception machinery (registry, slots, redirects, loading)."""

from slotmock.runtime.impl_loader import ImplLoader
from slotmock.runtime.load_bridge import LoadEventBridge
from slotmock.runtime.module_manager import ModuleManager
from slotmock.runtime.override_list import OverrideList
from slotmock.runtime.redirect_builder import RedirectBuilder
from slotmock.runtime.registry import OverrideRegistry
from slotmock.runtime.slot_codec import SlotAddressCodec
from slotmock.runtime.slot_locator import CallSlot, SlotLocator

__all__ = [
    "CallSlot",
    "ImplLoader",
    "LoadEventBridge",
    "ModuleManager",
    "OverrideList",
    "OverrideRegistry",
    "RedirectBuilder",
    "SlotAddressCodec",
    "SlotLocator",
]
