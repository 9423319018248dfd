"""slotmock.errors -- Exception taxonomy."""


class SlotmockError(Exception):
    """Base class for all slotmock errors."""


class ValidationError(SlotmockError, ValueError):
    """A registration request is missing a required argument.

    Raised before any registry state is touched.
    """


class SlotResolutionError(SlotmockError, LookupError):
    """A slot address baked into a redirect cannot be resolved.

    Fatal to the single intercepted call that raised it; the registry
    itself stays consistent.
    """
