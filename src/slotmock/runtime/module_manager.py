"""slotmock.runtime.module_manager -- Runtime module compilation with load notifications."""

from __future__ import annotations

import linecache
import logging
import sys
import threading
import types
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

ModuleListener = Callable[[types.ModuleType], None]


def _virtual_filename(module_path: str, version: int) -> str:
    return f"slotmock://{module_path}#v{version}"


@dataclass
class PatchRecord:
    """Record of a single module compilation."""

    module_path: str
    source: str
    version: int
    virtual_filename: str


class _VirtualLoader:
    """Minimal loader satisfying inspect.getsource() for virtual modules."""

    def __init__(self, source: str, filename: str) -> None:
        self._source = source
        self._filename = filename

    def get_source(self, fullname: str) -> str:
        return self._source

    def get_filename(self, fullname: str) -> str:
        return self._filename


class ModuleManager:
    """Compiles source into virtual modules and announces every load.

    Patching a module that already exists replaces its namespace, so any
    class it defines is created again as a new version. Listeners
    registered with :meth:`subscribe` are called with the module once its
    code has executed.
    """

    def __init__(self) -> None:
        self._history: dict[str, list[PatchRecord]] = {}
        self._versions: dict[str, int] = {}
        self._virtual_packages: set[str] = set()
        self._patched_modules: set[str] = set()
        self._listeners: list[ModuleListener] = []
        self._listeners_lock = threading.Lock()

    def subscribe(self, listener: ModuleListener) -> None:
        """Call *listener* with every module loaded from now on."""
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: ModuleListener) -> None:
        """Stop notifying *listener*. Unknown listeners are ignored."""
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def patch_module(self, module_path: str, source: str) -> types.ModuleType:
        """Compile (or recompile) a module from source and notify listeners.

        Semantics: patch = "write file + restart". The old module namespace
        is completely replaced, not incrementally updated.

        Args:
            module_path: Dotted module path, e.g. "app.models.user"
            source: Python source code for the module

        Returns:
            The patched/created module object
        """
        from forwardpy import unregister_module_impls

        version = self._versions.get(module_path, 0) + 1
        self._versions[module_path] = version

        virtual_filename = _virtual_filename(module_path, version)

        self._ensure_parent_packages(module_path)

        module = sys.modules.get(module_path)
        if module is not None:
            unregister_module_impls(module_path)
            self._clear_module_namespace(module)
        else:
            module = types.ModuleType(module_path)
            sys.modules[module_path] = module

        self._patched_modules.add(module_path)

        loader = _VirtualLoader(source, virtual_filename)
        module.__name__ = module_path
        module.__file__ = virtual_filename
        module.__loader__ = loader
        module.__package__ = module_path.rpartition(".")[0] or module_path

        # Every version keeps its own linecache entry so that classes of
        # older versions still map to the source they were compiled from.
        self._inject_linecache(virtual_filename, source)

        code = compile(source, virtual_filename, "exec")
        exec(code, module.__dict__)

        self._attach_to_parent(module_path, module)

        self._history.setdefault(module_path, []).append(PatchRecord(
            module_path=module_path,
            source=source,
            version=version,
            virtual_filename=virtual_filename,
        ))
        logger.debug("Loaded %s (v%d)", module_path, version)

        self._notify(module)
        return module

    def _notify(self, module: types.ModuleType) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(module)

    def get_source(self, module_path: str) -> str | None:
        """Get the current source code for a patched module."""
        history = self._history.get(module_path)
        if not history:
            return None
        return history[-1].source

    def get_history(self, module_path: str) -> list[PatchRecord]:
        """Get the full compilation history for a module."""
        return list(self._history.get(module_path, []))

    def get_version(self, module_path: str) -> int:
        """Get the current version number (0 if never patched)."""
        return self._versions.get(module_path, 0)

    def _clear_module_namespace(self, module: types.ModuleType) -> None:
        preserve = {
            "__name__", "__loader__", "__package__", "__spec__",
            "__path__", "__file__", "__builtins__",
        }
        for k in [k for k in module.__dict__ if k not in preserve]:
            del module.__dict__[k]

    def _inject_linecache(self, filename: str, source: str) -> None:
        lines = [line + "\n" for line in source.splitlines()]
        linecache.cache[filename] = (len(source), None, lines, filename)

    def _ensure_parent_packages(self, module_path: str) -> None:
        """Create virtual parent packages if they don't exist in sys.modules."""
        parts = module_path.split(".")
        for i in range(1, len(parts)):
            parent_path = ".".join(parts[:i])
            if parent_path not in sys.modules:
                pkg = types.ModuleType(parent_path)
                pkg.__path__ = []
                pkg.__package__ = parent_path
                sys.modules[parent_path] = pkg
                self._virtual_packages.add(parent_path)

    def _attach_to_parent(self, module_path: str, module: types.ModuleType) -> None:
        if "." in module_path:
            parent_path, _, child_name = module_path.rpartition(".")
            parent = sys.modules.get(parent_path)
            if parent is not None:
                setattr(parent, child_name, module)

    def cleanup(self) -> None:
        """Unload all virtual modules and packages and drop listeners.

        Useful for test teardown.
        """
        for module_path in self._patched_modules:
            sys.modules.pop(module_path, None)
        for history in self._history.values():
            for record in history:
                linecache.cache.pop(record.virtual_filename, None)
        for pkg_path in self._virtual_packages:
            sys.modules.pop(pkg_path, None)
        self._history.clear()
        self._versions.clear()
        self._patched_modules.clear()
        self._virtual_packages.clear()
        with self._listeners_lock:
            self._listeners.clear()
