"""slotmock.builtins.session -- MockSession implementation."""

import logging

import slotmock
from slotmock.errors import ValidationError
from slotmock.runtime.override_list import always
from slotmock.session import MockSession

logger = logging.getLogger("slotmock.session")


@slotmock.impl(MockSession.add_method_mock)
def add_method_mock(
    self: MockSession,
    type_name: str,
    method_name: str,
    replacement,
    predicate=None,
) -> None:
    if not isinstance(type_name, str) or not type_name.strip():
        raise ValidationError("type_name must be a non-empty string")
    if not isinstance(method_name, str) or not method_name.strip():
        raise ValidationError("method_name must be a non-empty string")
    if replacement is None or not callable(replacement):
        raise ValidationError(f"replacement for {type_name}.{method_name} must be callable")
    if predicate is None:
        predicate = always
    elif not callable(predicate):
        raise ValidationError(f"predicate for {type_name}.{method_name} must be callable")

    self.registry.request_mock(type_name, method_name, predicate, replacement)


@slotmock.impl(MockSession.clear_method_mock)
def clear_method_mock(self: MockSession) -> None:
    self.registry.tear_down()


@slotmock.impl(MockSession.close)
def close(self: MockSession) -> None:
    self.bridge.uninstall()
    self.registry.tear_down()
    logger.info("Mock session closed")
