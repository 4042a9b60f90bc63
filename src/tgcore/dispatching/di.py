"""Type-keyed dependency container and parameter injection."""

from __future__ import annotations

import inspect
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..api_models import Model
from ..errors import MissingDependency

_MISSING = object()


class DependencyMap:
    """Values keyed by type; later inserts win on overlapping lookups.

    A lookup tries the exact key first, then the most recently inserted
    value that is an instance of the requested class. Bot API models are
    the exception and only match their exact key.
    """

    __slots__ = ("_values",)

    def __init__(self, values: dict[Any, Any] | None = None) -> None:
        self._values: dict[Any, Any] = dict(values) if values else {}

    def insert(self, value: Any, key: Any = None) -> None:
        if key is None:
            key = type(value)
        self._values.pop(key, None)
        self._values[key] = value

    def insert_all(self, values: typing.Iterable[Any]) -> None:
        for value in values:
            self.insert(value)

    def update(self, other: DependencyMap) -> None:
        for key, value in other._values.items():
            self.insert(value, key)

    def get(self, key: Any, default: Any = _MISSING) -> Any:
        try:
            return self._values[key]
        except (KeyError, TypeError):
            pass
        origin = typing.get_origin(key)
        if isinstance(origin, type) and origin is not types.UnionType:
            # Dialogue[State] and friends match on the runtime class
            key = origin
        if isinstance(key, type) and issubclass(key, Model):
            # Bot API models match by exact type only, so Me never answers for User
            return self._missing(key, default)
        for value in reversed(self._values.values()):
            try:
                if isinstance(value, key):
                    return value
            except TypeError:
                break
        return self._missing(key, default)

    @staticmethod
    def _missing(key: Any, default: Any) -> Any:
        if default is _MISSING:
            raise KeyError(key)
        return default

    def __contains__(self, key: Any) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        return len(self._values)

    def clone(self) -> DependencyMap:
        return DependencyMap(self._values)

    def with_value(self, value: Any, key: Any = None) -> DependencyMap:
        cloned = self.clone()
        cloned.insert(value, key)
        return cloned

    def __repr__(self) -> str:
        keys = ", ".join(_key_name(key) for key in self._values)
        return f"DependencyMap({keys})"


def _key_name(key: Any) -> str:
    return getattr(key, "__qualname__", None) or repr(key)


@dataclass(frozen=True, slots=True)
class _Param:
    name: str
    key: Any
    default: Any


def _callable_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or type(fn).__qualname__


def _hints(fn: Callable[..., Any]) -> dict[str, Any]:
    target = fn
    if not inspect.isfunction(fn) and not inspect.ismethod(fn):
        target = getattr(fn, "__call__", fn)
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError):
        return {}


_PARAMS_CACHE: dict[Any, tuple[_Param, ...]] = {}


def parameters(fn: Callable[..., Any]) -> tuple[_Param, ...]:
    try:
        return _PARAMS_CACHE[fn]
    except (KeyError, TypeError):
        pass
    hints = _hints(fn)
    params: list[_Param] = []
    for name, param in inspect.signature(fn).parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        key = hints.get(name, param.annotation)
        if key is inspect.Parameter.empty:
            raise TypeError(
                f"parameter {name!r} of {_callable_name(fn)} needs a type annotation"
            )
        default = _MISSING if param.default is param.empty else param.default
        params.append(_Param(name, key, default))
    resolved = tuple(params)
    try:
        _PARAMS_CACHE[fn] = resolved
    except TypeError:
        pass
    return resolved


def return_key(fn: Callable[..., Any]) -> Any:
    """The non-optional return annotation of ``fn``, if it has one."""
    annotation = _hints(fn).get("return")
    if annotation is None:
        return None
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return args[0] if len(args) == 1 else None
    return annotation


def resolve(fn: Callable[..., Any], deps: DependencyMap) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for param in parameters(fn):
        if param.key is DependencyMap:
            kwargs[param.name] = deps
            continue
        try:
            value = deps.get(param.key)
        except KeyError:
            if param.default is _MISSING:
                raise MissingDependency(param.key, _callable_name(fn)) from None
            value = param.default
        kwargs[param.name] = value
    return kwargs


async def inject(fn: Callable[..., Any], deps: DependencyMap) -> Any:
    """Call ``fn`` with arguments looked up by annotation, awaiting if needed."""
    result = fn(**resolve(fn, deps))
    if inspect.isawaitable(result):
        result = await result
    return result
