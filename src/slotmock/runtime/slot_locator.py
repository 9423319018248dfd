"""slotmock.runtime.slot_locator -- Finding the call slots of a class."""

from __future__ import annotations

import ast
import inspect
import logging
import os
import textwrap
import types
from dataclasses import dataclass
from typing import Any

import forwardpy

logger = logging.getLogger(__name__)

_FORWARDPY_DIR = os.path.dirname(os.path.abspath(forwardpy.__file__))


@dataclass(frozen=True)
class CallSlot:
    """One method implementation location: ``vars(owner)[name]``.

    Attributes:
        owner: The concrete class version that holds the slot.
        name: Attribute name of the method.
        index: Position of the slot among the owner's method slots.
    """

    owner: type
    name: str
    index: int

    @property
    def method_key(self) -> str:
        return method_key(self.owner.__qualname__, self.name)

    @property
    def current(self) -> Any:
        """The object currently stored in the slot."""
        return self.owner.__dict__[self.name]

    def write(self, value: Any) -> None:
        setattr(self.owner, self.name, value)


def method_key(type_name: str, method_name: str) -> str:
    return f"{type_name}\\{method_name}"


def slot_function(value: Any) -> types.FunctionType | None:
    """Return the plain function behind a slot value, or None."""
    if isinstance(value, (classmethod, staticmethod)):
        value = value.__func__
    if isinstance(value, types.FunctionType):
        return value
    return None


class SlotLocator:
    """Enumerates and re-finds the call slots of a class.

    A class's slots are the function-bearing entries of its own
    ``__dict__`` (plain functions, classmethods and staticmethods), in
    definition order. Rewriting a slot only replaces its value, so slot
    indices stay stable for the lifetime of the class.
    """

    def slots(self, cls: type) -> list[CallSlot] | None:
        """Return the method slots of *cls*, or None if it declares no methods."""
        names = [
            name for name, value in vars(cls).items()
            if slot_function(value) is not None
        ]
        if not names:
            return None
        return [CallSlot(cls, name, index) for index, name in enumerate(names)]

    def find(self, cls: type, index: int) -> CallSlot:
        """Return the slot of *cls* at *index*.

        Raises:
            LookupError: If *cls* has no slot at that position.
        """
        slots = self.slots(cls) or []
        if not 0 <= index < len(slots):
            raise LookupError(f"{cls.__qualname__} has no method slot {index}")
        return slots[index]

    def user_declaration(
        self, func: types.FunctionType
    ) -> tuple[ast.FunctionDef | ast.AsyncFunctionDef, int] | None:
        """Parse the user-written definition of *func*.

        Returns the ``def`` node and the line number it starts at, or None
        when the implementation was synthesized rather than written:
        code without retrievable source, code generated by forwardpy, a
        declaration stub whose body is only ``...``, or a lambda.
        """
        code = func.__code__
        filename = os.path.abspath(code.co_filename)
        if filename.startswith(_FORWARDPY_DIR + os.sep):
            logger.debug("Skipping %s: generated by forwardpy", func.__qualname__)
            return None
        try:
            lines, lineno = inspect.getsourcelines(code)
        except (OSError, TypeError):
            logger.debug("Skipping %s: no source available", func.__qualname__)
            return None
        try:
            tree = ast.parse(textwrap.dedent("".join(lines)))
        except SyntaxError:
            logger.debug("Skipping %s: source does not parse alone", func.__qualname__)
            return None
        if not tree.body:
            return None
        node = tree.body[0]
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return None
        if node.name != code.co_name:
            return None
        if _is_declaration_stub(node):
            logger.debug("Skipping %s: declaration stub", func.__qualname__)
            return None
        return node, lineno


def _is_declaration_stub(node: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    """True for a body made of nothing but an optional docstring and ``...``."""
    body = node.body
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) \
            and isinstance(body[0].value.value, str):
        body = body[1:]
    return len(body) == 1 and isinstance(body[0], ast.Expr) \
        and isinstance(body[0].value, ast.Constant) and body[0].value.value is Ellipsis
