"""slotmock.runtime.override_list -- Ordered predicate/replacement pairs."""

from __future__ import annotations

from typing import Any, Callable, NamedTuple


class Override(NamedTuple):
    predicate: Callable[..., Any]
    replacement: Callable[..., Any]


def always(*args: Any, **kwargs: Any) -> bool:
    """Default predicate: matches every call."""
    return True


class OverrideList:
    """Overrides for one method key, most recently added first.

    Entries are kept in an immutable tuple that is swapped on every
    addition, so :meth:`evaluate` can walk a consistent snapshot without
    holding the registry lock.
    """

    def __init__(self) -> None:
        self._entries: tuple[Override, ...] = ()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def add_condition(
        self,
        predicate: Callable[..., Any],
        replacement: Callable[..., Any],
    ) -> None:
        """Insert an override in front of all existing ones."""
        self._entries = (Override(predicate, replacement),) + self._entries

    def evaluate(self, args: tuple, kwargs: dict[str, Any]) -> Callable[..., Any] | None:
        """Return the replacement of the first override whose predicate matches.

        Predicates are called with the intercepted call's arguments,
        receiver included. Returns None when nothing matches.
        """
        for override in self._entries:
            if override.predicate(*args, **kwargs):
                return override.replacement
        return None
