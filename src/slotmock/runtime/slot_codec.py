"""slotmock.runtime.slot_codec -- Slot addresses as strings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from slotmock.errors import SlotResolutionError

if TYPE_CHECKING:
    from slotmock.base import TypeCatalog
    from slotmock.runtime.slot_locator import CallSlot, SlotLocator


class SlotAddressCodec:
    """Converts a call slot to a ``"<module>:<type>:<slot>"`` string and back.

    The three integers are the catalog's module token, the catalog's type
    token and the slot's index within its class. Decoding re-resolves each
    part against the modules loaded at that moment, so an address stays
    valid for as long as its module remains in ``sys.modules``.

    Args:
        catalog: The TypeCatalog that issued the tokens.
        locator: The SlotLocator used to re-find the slot inside its class.
    """

    separator = ":"

    def __init__(self, catalog: TypeCatalog, locator: SlotLocator) -> None:
        self._catalog = catalog
        self._locator = locator

    def encode(self, slot: CallSlot) -> str:
        module_token = self._catalog.module_token(slot.owner.__module__)
        type_token = self._catalog.type_token(slot.owner)
        return self.separator.join(str(n) for n in (module_token, type_token, slot.index))

    def decode(self, address: str) -> CallSlot:
        """Resolve *address* back to its call slot.

        Raises:
            SlotResolutionError: If the address is malformed or no longer
                matches a loaded module, class or slot.
        """
        parts = address.split(self.separator)
        if len(parts) != 3:
            raise SlotResolutionError(f"Malformed slot address {address!r}")
        try:
            module_token, type_token, index = (int(p) for p in parts)
        except ValueError:
            raise SlotResolutionError(f"Malformed slot address {address!r}") from None
        try:
            cls = self._catalog.resolve_type(module_token, type_token)
            return self._locator.find(cls, index)
        except LookupError as e:
            raise SlotResolutionError(f"Cannot resolve slot address {address!r}: {e}") from e
