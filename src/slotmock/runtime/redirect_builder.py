"""slotmock.runtime.redirect_builder -- Synthesizing redirect methods."""

from __future__ import annotations

import ast
import builtins
import copy
import functools
import types
from typing import Any, Callable

_RESOLVE = "__slotmock_resolve__"
_FACTORY = "__slotmock_factory__"
_ITEM = "__slotmock_item__"

Resolver = Callable[[str, tuple, dict], Callable[[], Any]]


class RedirectBuilder:
    """Builds a stand-in for a method that asks a resolver what to run.

    The redirect is compiled from a copy of the original ``def`` node with
    only the body replaced, so it has the same parameters (names, kinds,
    order) and keeps the original line numbers and file name. Its body
    passes the slot address and the call's arguments to the resolver and
    invokes whatever callable comes back::

        def area(self, scale):
            return __slotmock_resolve__('0:4:1', (self, scale), {})()

    Annotations, defaults and metadata are copied from the live original
    afterwards instead of being evaluated again.
    """

    def build(
        self,
        original: Any,
        declaration: ast.FunctionDef | ast.AsyncFunctionDef,
        lineno: int,
        address: str,
        resolve: Resolver,
    ) -> Any:
        """Return a redirect for *original* suitable for writing into its slot.

        Args:
            original: The slot's current value (function, classmethod or
                staticmethod).
            declaration: The original's parsed ``def`` node.
            lineno: Line number of the first line of the original source.
            address: Slot address baked into the redirect body.
            resolve: Callable invoked by the redirect on every call.
        """
        func = original.__func__ if isinstance(original, (classmethod, staticmethod)) else original

        node = copy.deepcopy(declaration)
        node.decorator_list = []
        node.returns = None
        _strip_signature(node.args)
        node.body = _redirect_body(declaration, address)

        factory = ast.FunctionDef(
            name=_FACTORY,
            args=ast.arguments(
                posonlyargs=[], args=[ast.arg(arg=_RESOLVE)], vararg=None,
                kwonlyargs=[], kw_defaults=[], kwarg=None, defaults=[],
            ),
            body=[node, ast.Return(value=ast.Name(id=node.name, ctx=ast.Load()))],
            decorator_list=[],
            returns=None,
            type_comment=None,
        )
        if "type_params" in ast.FunctionDef._fields:
            factory.type_params = []
        module = ast.Module(body=[factory], type_ignores=[])
        _locate_new_nodes(module, declaration.lineno)
        ast.increment_lineno(module, lineno - 1)

        code = compile(module, func.__code__.co_filename, "exec")
        namespace: dict[str, Any] = {"__name__": func.__module__, "__builtins__": builtins}
        exec(code, namespace)
        redirect = namespace[_FACTORY](resolve)

        functools.update_wrapper(redirect, func)
        redirect.__defaults__ = func.__defaults__
        redirect.__kwdefaults__ = func.__kwdefaults__
        redirect.__slotmock_address__ = address

        if isinstance(original, classmethod):
            return classmethod(redirect)
        if isinstance(original, staticmethod):
            return staticmethod(redirect)
        return redirect


def is_redirect(value: Any) -> bool:
    """True if *value* (or the function it wraps) was built by RedirectBuilder."""
    if isinstance(value, (classmethod, staticmethod)):
        value = value.__func__
    return isinstance(value, types.FunctionType) and hasattr(value, "__slotmock_address__")


def _strip_signature(args: ast.arguments) -> None:
    """Drop annotations and replace default expressions with placeholders."""
    for arg in args.posonlyargs + args.args + args.kwonlyargs:
        arg.annotation = None
    for arg in (args.vararg, args.kwarg):
        if arg is not None:
            arg.annotation = None
    args.defaults = [ast.Constant(value=None) for _ in args.defaults]
    args.kw_defaults = [
        None if default is None else ast.Constant(value=None)
        for default in args.kw_defaults
    ]


def _redirect_body(
    declaration: ast.FunctionDef | ast.AsyncFunctionDef, address: str
) -> list[ast.stmt]:
    args = declaration.args
    positional: list[ast.expr] = [
        ast.Name(id=a.arg, ctx=ast.Load()) for a in args.posonlyargs + args.args
    ]
    if args.vararg is not None:
        positional.append(ast.Starred(value=ast.Name(id=args.vararg.arg, ctx=ast.Load()), ctx=ast.Load()))
    keys: list[ast.expr | None] = [ast.Constant(value=a.arg) for a in args.kwonlyargs]
    values: list[ast.expr] = [ast.Name(id=a.arg, ctx=ast.Load()) for a in args.kwonlyargs]
    if args.kwarg is not None:
        keys.append(None)
        values.append(ast.Name(id=args.kwarg.arg, ctx=ast.Load()))

    resolved = ast.Call(
        func=ast.Name(id=_RESOLVE, ctx=ast.Load()),
        args=[
            ast.Constant(value=address),
            ast.Tuple(elts=positional, ctx=ast.Load()),
            ast.Dict(keys=keys, values=values),
        ],
        keywords=[],
    )
    call = ast.Call(func=resolved, args=[], keywords=[])

    is_async = isinstance(declaration, ast.AsyncFunctionDef)
    if _is_generator(declaration):
        if is_async:
            return [ast.AsyncFor(
                target=ast.Name(id=_ITEM, ctx=ast.Store()),
                iter=call,
                body=[ast.Expr(value=ast.Yield(value=ast.Name(id=_ITEM, ctx=ast.Load())))],
                orelse=[],
            )]
        return [ast.Return(value=ast.YieldFrom(value=call))]
    if is_async:
        return [ast.Return(value=ast.Await(value=call))]
    if _returns_none(declaration):
        return [ast.Expr(value=call)]
    return [ast.Return(value=call)]


def _returns_none(declaration: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    returns = declaration.returns
    return isinstance(returns, ast.Constant) and returns.value is None


def _is_generator(declaration: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    """True if the function's own scope contains ``yield``."""
    pending: list[ast.AST] = list(declaration.body)
    while pending:
        node = pending.pop()
        if isinstance(node, (ast.Yield, ast.YieldFrom)):
            return True
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            continue
        pending.extend(ast.iter_child_nodes(node))
    return False


def _locate_new_nodes(tree: ast.AST, line: int) -> None:
    """Pin synthesized nodes to *line* so every node carries a valid position."""
    for node in ast.walk(tree):
        if "lineno" in node._attributes and getattr(node, "lineno", None) is None:
            node.lineno = node.end_lineno = line
            node.col_offset = node.end_col_offset = 0
