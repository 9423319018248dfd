"""slotmock.runtime.registry -- The override registry."""

from __future__ import annotations

import functools
import logging
import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from slotmock.errors import SlotResolutionError
from slotmock.runtime.override_list import OverrideList
from slotmock.runtime.redirect_builder import RedirectBuilder, is_redirect
from slotmock.runtime.slot_codec import SlotAddressCodec
from slotmock.runtime.slot_locator import CallSlot, SlotLocator, method_key, slot_function

if TYPE_CHECKING:
    from slotmock.base import TypeCatalog

logger = logging.getLogger(__name__)

# Types defined under this namespace belong to slotmock itself.
RESERVED_NAMESPACE = "slotmock."


@dataclass(frozen=True)
class SlotRecord:
    """The implementation a slot held before it was rewritten."""

    slot: CallSlot
    original: Any
    address: str


class OverrideRegistry:
    """Owns all interception state of a mocking session.

    State:
        overrides: method key -> OverrideList
        originals: CallSlot -> SlotRecord (one per rewritten slot)
        watched: type names requested before any matching class existed
        initialized: type names with at least one rewritten class version
        initialized_types: concrete class versions already processed

    All state is guarded by one re-entrant lock. Call-time resolution only
    takes the lock to read snapshots; predicates run outside of it.

    Args:
        catalog: Where class versions are looked up by name and token.
        locator: Finds method slots; defaults to a new SlotLocator.
        codec: Encodes slot addresses; defaults to one built on *catalog*.
        builder: Synthesizes redirects; defaults to a new RedirectBuilder.
    """

    def __init__(
        self,
        catalog: TypeCatalog,
        locator: SlotLocator | None = None,
        codec: SlotAddressCodec | None = None,
        builder: RedirectBuilder | None = None,
    ) -> None:
        self._catalog = catalog
        self._locator = locator or SlotLocator()
        self._codec = codec or SlotAddressCodec(catalog, self._locator)
        self._builder = builder or RedirectBuilder()
        self._lock = threading.RLock()
        self._overrides: dict[str, OverrideList] = {}
        self._originals: dict[CallSlot, SlotRecord] = {}
        self._watched: set[str] = set()
        self._initialized: set[str] = set()
        self._initialized_types: set[type] = set()

    # -- registration ------------------------------------------------------

    def request_mock(
        self,
        type_name: str,
        method_name: str,
        predicate: Callable[..., Any],
        replacement: Callable[..., Any],
    ) -> None:
        """Register an override for ``type_name.method_name``.

        Rewrites every loaded version of *type_name* that has not been
        rewritten yet. If no version is loaded, the name is watched and
        rewritten as soon as one is loaded.
        """
        with self._lock:
            versions = [
                cls for cls in self._catalog.versions(type_name)
                if not _is_reserved(cls)
            ]
            if versions:
                for cls in versions:
                    if cls in self._initialized_types:
                        self._recheck_type(cls)
                    else:
                        self._rewrite_type(cls)
                self._initialized.add(type_name)
            elif type_name not in self._initialized:
                logger.info("No loaded type named %s yet; watching for it", type_name)
                self._watched.add(type_name)

            key = method_key(type_name, method_name)
            overrides = self._overrides.get(key)
            if overrides is None:
                overrides = self._overrides[key] = OverrideList()
            overrides.add_condition(predicate, replacement)
            logger.debug("Override #%d registered for %s", len(overrides), key)

    def notify_type_loaded(self, cls: type) -> None:
        """Rewrite a newly loaded class version if its name is targeted."""
        if _is_reserved(cls):
            return
        name = cls.__qualname__
        with self._lock:
            if name in self._watched:
                self._rewrite_type(cls)
                self._watched.discard(name)
                self._initialized.add(name)
            elif name in self._initialized:
                self._rewrite_type(cls)

    def _rewrite_type(self, cls: type) -> int:
        """Replace every user-written method of *cls* with a redirect.

        Returns the number of slots rewritten by this call.
        """
        if cls in self._initialized_types:
            return 0
        if sys.modules.get(cls.__module__) is None:
            logger.debug("Skipping %s: module %s is not loaded", cls.__qualname__, cls.__module__)
            return 0
        self._initialized_types.add(cls)
        rewritten = self._rewrite_slots(cls)
        logger.info("Rewrote %d method(s) of %s", rewritten, cls.__qualname__)
        return rewritten

    def rescan(self) -> int:
        """Rewrite slots of processed classes that have gained a user-written body.

        A declaration stub is skipped when its class is first rewritten.
        Once an ``@impl`` module fills it in, the next rescan redirects it.
        Returns the number of slots rewritten.
        """
        with self._lock:
            rewritten = 0
            for cls in list(self._initialized_types):
                rewritten += self._recheck_type(cls)
            if rewritten:
                logger.info("Rescan rewrote %d method(s)", rewritten)
            return rewritten

    def _recheck_type(self, cls: type) -> int:
        if sys.modules.get(cls.__module__) is None:
            return 0
        return self._rewrite_slots(cls)

    def _rewrite_slots(self, cls: type) -> int:
        slots = self._locator.slots(cls)
        if slots is None:
            logger.debug("Skipping %s: no method slots", cls.__qualname__)
            return 0
        rewritten = 0
        for slot in slots:
            if slot in self._originals:
                continue
            original = slot.current
            func = slot_function(original)
            if is_redirect(func):
                continue
            found = self._locator.user_declaration(func)
            if found is None:
                continue
            declaration, lineno = found
            address = self._codec.encode(slot)
            redirect = self._builder.build(
                original, declaration, lineno, address, self.resolve_and_dispatch,
            )
            slot.write(redirect)
            self._originals[slot] = SlotRecord(slot, original, address)
            rewritten += 1
            logger.debug("Rewrote %s at %s", slot.method_key, address)
        return rewritten

    # -- call time ---------------------------------------------------------

    def resolve_and_dispatch(
        self, address: str, args: tuple, kwargs: dict[str, Any]
    ) -> Callable[[], Any]:
        """Pick what an intercepted call runs and bind it to the call's arguments.

        The first override whose predicate matches wins; otherwise the
        saved original implementation runs.

        Raises:
            SlotResolutionError: If *address* does not resolve to a slot.
        """
        slot = self._codec.decode(address)
        with self._lock:
            record = self._originals.get(slot)
            overrides = self._overrides.get(slot.method_key)

        if overrides is not None:
            replacement = overrides.evaluate(args, kwargs)
            if replacement is not None:
                return functools.partial(replacement, *args, **kwargs)

        if record is not None:
            return functools.partial(slot_function(record.original), *args, **kwargs)

        # Reached through a redirect that outlived its session.
        current = slot_function(slot.current)
        if current is None or is_redirect(current):
            raise SlotResolutionError(f"No original implementation recorded for {slot.method_key}")
        return functools.partial(current, *args, **kwargs)

    # -- teardown ----------------------------------------------------------

    def tear_down(self) -> None:
        """Restore every rewritten slot and forget all overrides."""
        with self._lock:
            for record in self._originals.values():
                record.slot.write(record.original)
            if self._watched:
                logger.warning("Never loaded: %s", ", ".join(sorted(self._watched)))
            if self._originals:
                logger.info("Restored %d method(s)", len(self._originals))
            self._overrides.clear()
            self._originals.clear()
            self._watched.clear()
            self._initialized.clear()
            self._initialized_types.clear()

    # -- introspection -----------------------------------------------------

    def is_watched(self, type_name: str) -> bool:
        with self._lock:
            return type_name in self._watched

    def is_initialized(self, type_name: str) -> bool:
        with self._lock:
            return type_name in self._initialized

    def is_type_initialized(self, cls: type) -> bool:
        with self._lock:
            return cls in self._initialized_types

    def original(self, cls: type, method_name: str) -> Any:
        """Return the pre-rewrite implementation of a slot, or None."""
        with self._lock:
            for slot, record in self._originals.items():
                if slot.owner is cls and slot.name == method_name:
                    return record.original
        return None

    def overrides(self, type_name: str, method_name: str) -> OverrideList | None:
        with self._lock:
            return self._overrides.get(method_key(type_name, method_name))

    @property
    def rewritten_count(self) -> int:
        with self._lock:
            return len(self._originals)


def _is_reserved(cls: type) -> bool:
    return f"{cls.__module__}.{cls.__qualname__}".startswith(RESERVED_NAMESPACE)
