from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, AsyncIterator, Iterable
from typing import Any, Union

from ..api_models import Update, UpdateKind
from ..errors import TgCoreError

ListenerEvent = Union[Update, TgCoreError]


class UpdateListener(ABC):
    """Source of updates for the dispatcher.

    Enter it as an async context manager, then iterate it. Errors are
    yielded next to updates so the consumer decides how to report them.
    """

    allowed_updates: list[str] | None = None

    def __init__(self) -> None:
        self._events: AsyncGenerator[ListenerEvent, None] | None = None

    def hint_allowed_updates(self, kinds: Iterable[UpdateKind]) -> None:
        if self.allowed_updates is None:
            self.allowed_updates = sorted(kind.value for kind in kinds)

    def timeout_hint(self) -> float | None:
        return None

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def events(self) -> AsyncGenerator[ListenerEvent, None]: ...

    async def __aenter__(self) -> Any:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        events, self._events = self._events, None
        if events is not None:
            await events.aclose()

    def __aiter__(self) -> AsyncIterator[ListenerEvent]:
        if self._events is None:
            self._events = self.events()
        return self._events
