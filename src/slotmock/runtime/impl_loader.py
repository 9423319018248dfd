"""slotmock.runtime.impl_loader -- Discover and load .impl.py files."""

from __future__ import annotations

import logging
import sys
import types
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from slotmock.runtime.module_manager import ModuleManager

logger = logging.getLogger(__name__)

IMPL_SUFFIX = ".impl.py"


class ImplLoader:
    """Loads ``.impl.py`` files holding ``@impl`` registrations.

    Declarations (``slotmock.Object`` subclasses with stub methods) live
    in importable modules; their implementations live in ``.impl.py``
    files that are executed here.

    Args:
        module_manager: Optional ModuleManager. If given, files are
            compiled through ``patch_module``, so its load listeners see
            the classes they define. Otherwise they are executed directly.
    """

    def __init__(self, module_manager: ModuleManager | None = None) -> None:
        self._module_manager = module_manager

    def discover(self, package_path: str | Path) -> list[Path]:
        """Return the ``.impl.py`` files under *package_path*, sorted."""
        root = Path(package_path)
        if not root.is_dir():
            return []
        return sorted(root.rglob("*" + IMPL_SUFFIX))

    def load_file(
        self,
        impl_path: str | Path,
        package_root: str | Path,
        base_package: str,
    ) -> types.ModuleType:
        """Execute one ``.impl.py`` file and return its module.

        The module name is derived from the path relative to
        *package_root*, prefixed with *base_package*.
        """
        impl_path = Path(impl_path)
        source = impl_path.read_text(encoding="utf-8")
        module_name = self._compute_module_name(impl_path, Path(package_root), base_package)
        logger.debug("Loading %s as %s", impl_path, module_name)

        if self._module_manager is not None:
            return self._module_manager.patch_module(module_name, source)
        return self._exec_module(module_name, source, str(impl_path))

    def load_all(self, package_path: str | Path, base_package: str) -> list[types.ModuleType]:
        """Discover and load every ``.impl.py`` file under *package_path*."""
        return [
            self.load_file(impl_path, package_path, base_package)
            for impl_path in self.discover(package_path)
        ]

    def _compute_module_name(
        self,
        impl_path: Path,
        package_root: Path,
        base_package: str,
    ) -> str:
        """``root/sub/foo.impl.py`` with base ``"pkg"`` becomes ``"pkg.sub.foo"``."""
        rel = impl_path.relative_to(package_root)
        stem = rel.name[: -len(IMPL_SUFFIX)] if rel.name.endswith(IMPL_SUFFIX) else rel.stem
        parts = [*rel.parent.parts, stem]
        if base_package:
            parts.insert(0, base_package)
        return ".".join(parts)

    def _exec_module(self, module_name: str, source: str, filename: str) -> types.ModuleType:
        module = types.ModuleType(module_name)
        module.__file__ = filename
        module.__package__ = module_name.rpartition(".")[0] or module_name
        sys.modules[module_name] = module
        exec(compile(source, filename, "exec"), module.__dict__)
        return module
