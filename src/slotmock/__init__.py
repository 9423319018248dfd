"""slotmock - Runtime method interception for dynamically compiled classes."""

__version__ = "0.1.0"

from slotmock.base import Object, SlotmockMeta, TypeCatalog
from slotmock.errors import SlotmockError, SlotResolutionError, ValidationError
from forwardpy import impl

__all__ = [
    "Object",
    "SlotmockMeta",
    "TypeCatalog",
    "impl",
    "SlotmockError",
    "SlotResolutionError",
    "ValidationError",
]
