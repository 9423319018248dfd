"""slotmock base module - Object base class, SlotmockMeta metaclass and TypeCatalog."""

from __future__ import annotations

import sys
import threading
import types
import weakref
from typing import Any

from forwardpy import Object as _ForwardpyObject
from forwardpy.core import ObjectMeta


class TypeCatalog:
    """Index of every class version created through SlotmockMeta.

    Classes are grouped by ``__qualname__``. Redefining a class (for
    example by patching its module again) adds a new version next to
    the old ones instead of replacing them, so instances created from an
    older version keep working and remain discoverable.

    The catalog also hands out the small integer tokens used by slot
    addresses: one per module name and one per class version. Entries of
    collected classes are dropped on the next registration; their tokens
    are never reused. Module tokens live as long as the catalog.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._versions: dict[str, list[weakref.ref[type]]] = {}
        self._types: dict[int, weakref.ref[type]] = {}
        self._type_tokens: weakref.WeakKeyDictionary[type, int] = weakref.WeakKeyDictionary()
        self._next_token = 0
        self._collected: list[int] = []
        self._modules: list[str] = []
        self._module_tokens: dict[str, int] = {}

    def __len__(self) -> int:
        with self._lock:
            self._prune_locked()
            return len(self._types)

    def register(self, cls: type) -> int:
        """Record a freshly created class version and return its type token."""
        with self._lock:
            self._prune_locked()
            token = self._type_tokens.get(cls)
            if token is not None:
                return token
            token = self._next_token
            self._next_token += 1
            # The callback may run during any allocation, so it only queues.
            ref = weakref.ref(cls, lambda _, t=token: self._collected.append(t))
            self._types[token] = ref
            self._type_tokens[cls] = token
            self._versions.setdefault(cls.__qualname__, []).append(ref)
            self._module_token_locked(cls.__module__)
            return token

    def _prune_locked(self) -> None:
        if not self._collected:
            return
        while self._collected:
            self._types.pop(self._collected.pop(), None)
        for name in list(self._versions):
            refs = [ref for ref in self._versions[name] if ref() is not None]
            if refs:
                self._versions[name] = refs
            else:
                del self._versions[name]

    def versions(self, name: str) -> list[type]:
        """Return all live class versions named *name*, oldest first."""
        with self._lock:
            refs = self._versions.get(name, [])
            return [cls for cls in (ref() for ref in refs) if cls is not None]

    def type_token(self, cls: type) -> int:
        """Return the token of a registered class.

        Raises:
            KeyError: If *cls* was not created by SlotmockMeta.
        """
        with self._lock:
            return self._type_tokens[cls]

    def module_token(self, module_name: str) -> int:
        with self._lock:
            return self._module_token_locked(module_name)

    def _module_token_locked(self, module_name: str) -> int:
        token = self._module_tokens.get(module_name)
        if token is None:
            token = len(self._modules)
            self._modules.append(module_name)
            self._module_tokens[module_name] = token
        return token

    def resolve_module(self, module_token: int) -> types.ModuleType:
        """Map a module token back to a module that is currently loaded.

        Raises:
            LookupError: If the token is unknown or the module was unloaded.
        """
        with self._lock:
            if not 0 <= module_token < len(self._modules):
                raise LookupError(f"unknown module token {module_token}")
            name = self._modules[module_token]
        module = sys.modules.get(name)
        if module is None:
            raise LookupError(f"module {name!r} is not loaded")
        return module

    def resolve_type(self, module_token: int, type_token: int) -> type:
        """Map a (module, type) token pair back to a live class version.

        Raises:
            LookupError: If the module is not loaded, the class was
                garbage collected, or the class does not belong to the module.
        """
        module = self.resolve_module(module_token)
        with self._lock:
            if not 0 <= type_token < self._next_token:
                raise LookupError(f"unknown type token {type_token}")
            ref = self._types.get(type_token)
        cls = ref() if ref is not None else None
        if cls is None:
            raise LookupError(f"type token {type_token} refers to a collected class")
        if cls.__module__ != module.__name__:
            raise LookupError(
                f"type {cls.__qualname__!r} does not belong to module {module.__name__!r}"
            )
        return cls


class SlotmockMeta(ObjectMeta):
    """slotmock metaclass extending forwardpy.ObjectMeta.

    Every class created through this metaclass is recorded in the shared
    ``catalog``. A class with the same (module, qualname) created again is
    a new, separately loaded version; both versions stay in the catalog so
    that method overrides registered by name apply to all of them.
    """

    catalog = TypeCatalog()

    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
    ) -> SlotmockMeta:
        cls = super().__new__(mcs, name, bases, namespace)
        mcs.catalog.register(cls)
        return cls


class Object(_ForwardpyObject, metaclass=SlotmockMeta):
    """slotmock unified base class.

    Subclasses form the class system whose methods can be intercepted.
    Declaration stubs and ``@impl`` registrations work exactly as with
    forwardpy.Object.
    """

    pass
