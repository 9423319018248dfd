"""slotmock.session -- MockSession declaration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional

import slotmock

if TYPE_CHECKING:
    from slotmock.runtime.load_bridge import LoadEventBridge
    from slotmock.runtime.module_manager import ModuleManager
    from slotmock.runtime.registry import OverrideRegistry


class MockSession(slotmock.Object):
    """The command surface of one mocking session.

    Wraps an OverrideRegistry and the LoadEventBridge feeding it. The
    implementations are registered via @impl in builtins/session.impl.py.

    Attributes:
        registry: The registry holding all overrides and rewritten slots.
        module_manager: The loader whose module loads are watched.
        bridge: Subscription of the registry to module loads.
    """

    registry: OverrideRegistry
    module_manager: ModuleManager
    bridge: LoadEventBridge

    def add_method_mock(
        self,
        type_name: str,
        method_name: str,
        replacement: Callable[..., Any],
        predicate: Optional[Callable[..., Any]] = None,
    ) -> None:
        """Replace ``type_name.method_name`` on every loaded and future version.

        Args:
            type_name: Qualified name of the class (``__qualname__``).
            method_name: Name of the method to override.
            replacement: Called instead of the method, with the same arguments.
            predicate: Called with the same arguments; the replacement only
                runs when it returns a truthy value. Defaults to always-true.

        Raises:
            ValidationError: If a name is empty or a callable is missing.
        """
        ...

    def clear_method_mock(self) -> None:
        """Restore every intercepted method and drop all overrides."""
        ...

    def close(self) -> None:
        """End the session: stop watching module loads, then clear all mocks."""
        ...
