from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from ...api_models import Update
from ...errors import StorageError
from ...logging import get_logger
from ..di import DependencyMap
from ..handler import Continuation, Continue, ControlFlow, Handler
from .storage import ChatKey, Storage

logger = get_logger(__name__)

S = TypeVar("S")
R = TypeVar("R")


class Dialogue(Generic[S]):
    """Handle on the state of one chat inside a storage."""

    __slots__ = ("storage", "chat_id", "default_factory")

    def __init__(
        self,
        storage: Storage[S],
        chat_id: ChatKey,
        default_factory: Callable[[], S],
    ) -> None:
        self.storage = storage
        self.chat_id = chat_id
        self.default_factory = default_factory

    async def _call(self, operation: Callable[[], Awaitable[R]]) -> R:
        try:
            return await operation()
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"storage failed for chat {self.chat_id}: {exc}"
            ) from exc

    async def get(self) -> S | None:
        return await self._call(lambda: self.storage.get_dialogue(self.chat_id))

    async def get_or_default(self) -> S:
        state = await self.get()
        if state is None:
            return self.default_factory()
        return state

    async def update(self, state: S) -> None:
        await self._call(lambda: self.storage.update_dialogue(self.chat_id, state))

    async def reset(self) -> None:
        await self.update(self.default_factory())

    async def exit(self) -> None:
        await self._call(lambda: self.storage.remove_dialogue(self.chat_id))

    def __repr__(self) -> str:
        return f"Dialogue(chat_id={self.chat_id!r})"


def _default_factory_for(state_type: Any) -> Callable[[], Any]:
    if isinstance(state_type, type) and issubclass(state_type, enum.Enum):
        first = next(iter(state_type))
        return lambda: first
    if isinstance(state_type, type):
        return state_type
    raise TypeError(
        f"default_factory is required for state type {state_type!r}"
    )


class Enter(Handler):
    """Loads the chat's dialogue and injects it together with its state.

    Needs a ``Storage`` and an ``Update`` in the dependencies. Updates
    without a chat, or whose state cannot be loaded, are left unhandled.
    """

    def __init__(
        self,
        state_type: Any,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.state_type = state_type
        self.default_factory = default_factory or _default_factory_for(state_type)

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        update = deps.get(Update, None)
        storage = deps.get(Storage, None)
        if update is None or storage is None:
            logger.warning(
                "dialogue.missing_dependency",
                has_update=update is not None,
                has_storage=storage is not None,
            )
            return Continue(deps)
        chat_id = update.chat_id
        if chat_id is None:
            return Continue(deps)
        dialogue: Dialogue[Any] = Dialogue(storage, chat_id, self.default_factory)
        try:
            state = await dialogue.get_or_default()
        except StorageError as exc:
            logger.error(
                "dialogue.load_failed",
                chat_id=chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return Continue(deps)
        inner = deps.with_value(dialogue, Dialogue)
        inner.insert(state, self.state_type)
        return await cont(inner)

    def __repr__(self) -> str:
        return f"Enter({getattr(self.state_type, '__name__', self.state_type)!r})"


class Case(Handler):
    """Passes when the current dialogue state matches ``variant``.

    A class matches by ``isinstance``, anything else by equality. The
    matched state is injected under its variant class.
    """

    def __init__(self, variant: Any, state_type: Any) -> None:
        self.variant = variant
        self.state_type = state_type

    async def execute(self, deps: DependencyMap, cont: Continuation) -> ControlFlow:
        state = deps.get(self.state_type, None)
        if state is None:
            return Continue(deps)
        if isinstance(self.variant, type):
            if not isinstance(state, self.variant):
                return Continue(deps)
            return await cont(deps.with_value(state, self.variant))
        if state != self.variant:
            return Continue(deps)
        return await cont(deps)

    def __repr__(self) -> str:
        return f"Case({self.variant!r})"


def enter(state_type: Any, *, default_factory: Callable[[], Any] | None = None) -> Handler:
    return Enter(state_type, default_factory)


def case(variant: Any, *, state_type: Any) -> Handler:
    return Case(variant, state_type)
