"""Handler trees.

A handler is a node with ``execute(deps, cont)``: it either produces a
result (``Break``) or passes a possibly extended dependency map to its
continuation. ``dispatch`` runs a tree with an identity continuation, so a
``Continue`` result means no endpoint took the update.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..api_models import Update, UpdateKind
from .di import DependencyMap, inject, return_key

Continuation = Callable[[DependencyMap], Awaitable["ControlFlow"]]

ALL_KINDS: frozenset[UpdateKind] = UpdateKind.all()


@dataclass(slots=True)
class Continue:
    deps: DependencyMap


@dataclass(slots=True)
class Break:
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


ControlFlow = Continue | Break


async def _identity(deps: DependencyMap) -> ControlFlow:
    return Continue(deps)


@dataclass(frozen=True, slots=True)
class Description:
    kinds: frozenset[UpdateKind] = field(default_factory=frozenset)

    def allowed_updates(self) -> list[str]:
        return sorted(kind.value for kind in self.kinds)

    def __contains__(self, kind: object) -> bool:
        return kind in self.kinds


class Handler:
    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        return await cont(deps)

    async def dispatch(self, deps: DependencyMap) -> ControlFlow:
        return await self.execute(deps, _identity)

    # description

    def passes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        """Kinds that can reach this node's continuation."""
        return incoming

    def consumes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        """Kinds that can reach an endpoint inside this node."""
        return frozenset()

    def description(self) -> Description:
        return Description(self.consumes(ALL_KINDS))

    # builders

    def chain(self, other: Handler) -> Handler:
        return Chain(self, other)

    def branch(self, other: Handler) -> Handler:
        return Branch(self, other)

    def filter(self, pred: Callable[..., Any]) -> Handler:
        return self.chain(Filter(pred))

    def filter_async(self, pred: Callable[..., Awaitable[Any]]) -> Handler:
        return self.chain(Filter(pred))

    def filter_map(self, extract: Callable[..., Any], key: Any = None) -> Handler:
        return self.chain(FilterMap(extract, key))

    def map(self, fn: Callable[..., Any], key: Any = None) -> Handler:
        return self.chain(Map(fn, key))

    def inspect(self, fn: Callable[..., Any]) -> Handler:
        return self.chain(Inspect(fn))

    def endpoint(self, fn: Callable[..., Any]) -> Handler:
        return self.chain(Endpoint(fn))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Entry(Handler):
    """Root node; passes every update to its continuation."""


def _fn_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


class Filter(Handler):
    def __init__(self, pred: Callable[..., Any]) -> None:
        self.pred = pred

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        if await inject(self.pred, deps):
            return await cont(deps)
        return Continue(deps)

    def __repr__(self) -> str:
        return f"Filter({_fn_name(self.pred)})"


class FilterMap(Handler):
    def __init__(self, extract: Callable[..., Any], key: Any = None) -> None:
        self.extract = extract
        self.key = key if key is not None else return_key(extract)

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        value = await inject(self.extract, deps)
        if value is None:
            return Continue(deps)
        return await cont(deps.with_value(value, self.key))

    def __repr__(self) -> str:
        return f"FilterMap({_fn_name(self.extract)})"


class Map(Handler):
    def __init__(self, fn: Callable[..., Any], key: Any = None) -> None:
        self.fn = fn
        self.key = key if key is not None else return_key(fn)

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        value = await inject(self.fn, deps)
        return await cont(deps.with_value(value, self.key))

    def __repr__(self) -> str:
        return f"Map({_fn_name(self.fn)})"


class Inspect(Handler):
    def __init__(self, fn: Callable[..., Any]) -> None:
        self.fn = fn

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        await inject(self.fn, deps)
        return await cont(deps)

    def __repr__(self) -> str:
        return f"Inspect({_fn_name(self.fn)})"


class Endpoint(Handler):
    """Terminal node; any exception raised by ``fn`` becomes ``Break(error)``."""

    def __init__(self, fn: Callable[..., Any]) -> None:
        self.fn = fn

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        try:
            value = await inject(self.fn, deps)
        except Exception as exc:
            return Break(error=exc)
        return Break(value)

    def passes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        return frozenset()

    def consumes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        return incoming

    def __repr__(self) -> str:
        return f"Endpoint({_fn_name(self.fn)})"


class Chain(Handler):
    """Runs ``second`` in the continuation of ``first``."""

    def __init__(self, first: Handler, second: Handler) -> None:
        self.first = first
        self.second = second

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        async def next_(inner: DependencyMap) -> ControlFlow:
            return await self.second.execute(inner, cont)

        return await self.first.execute(deps, next_)

    def passes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        return self.second.passes(self.first.passes(incoming))

    def consumes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        through = self.first.passes(incoming)
        return self.first.consumes(incoming) | self.second.consumes(through)

    def __repr__(self) -> str:
        return f"{self.first!r} -> {self.second!r}"


class Branch(Handler):
    """Tries ``child`` as an independent subtree after ``parent`` passes.

    A handled result of ``child`` stops here; otherwise the update moves on
    to the outer continuation, i.e. the next branch.
    """

    def __init__(self, parent: Handler, child: Handler) -> None:
        self.parent = parent
        self.child = child

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        async def next_(inner: DependencyMap) -> ControlFlow:
            result = await self.child.dispatch(inner)
            if isinstance(result, Break):
                return result
            return await cont(inner)

        return await self.parent.execute(deps, next_)

    def passes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        return self.parent.passes(incoming)

    def consumes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        through = self.parent.passes(incoming)
        return self.parent.consumes(incoming) | self.child.consumes(through)

    def __repr__(self) -> str:
        return f"{self.parent!r} => [{self.child!r}]"


class KindFilter(Handler):
    """Lets through updates of the given kinds and injects their payload."""

    def __init__(self, kinds: Iterable[UpdateKind]) -> None:
        self.kinds = frozenset(kinds)

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        update = deps.get(Update, None)
        if update is None or update.kind not in self.kinds:
            return Continue(deps)
        return await cont(deps.with_value(update.payload))

    def passes(self, incoming: frozenset[UpdateKind]) -> frozenset[UpdateKind]:
        return incoming & self.kinds

    def __repr__(self) -> str:
        return f"KindFilter({', '.join(sorted(kind.value for kind in self.kinds))})"


def entry() -> Handler:
    return Entry()


def filter(pred: Callable[..., Any]) -> Handler:
    return Filter(pred)


def filter_async(pred: Callable[..., Awaitable[Any]]) -> Handler:
    return Filter(pred)


def filter_map(extract: Callable[..., Any], key: Any = None) -> Handler:
    return FilterMap(extract, key)


def map(fn: Callable[..., Any], key: Any = None) -> Handler:
    return Map(fn, key)


def inspect(fn: Callable[..., Any]) -> Handler:
    return Inspect(fn)


def endpoint(fn: Callable[..., Any]) -> Handler:
    return Endpoint(fn)
