from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import anyio

from ...logging import get_logger

logger = get_logger(__name__)

S = TypeVar("S")

ChatKey = int | str


class Storage(ABC, Generic[S]):
    """Chat-keyed dialogue state.

    Implementations must make each call atomic per chat; the dispatcher
    already serializes handlers of one chat, so a plain lock suffices.
    Failures should be raised as ``StorageError``.
    """

    @abstractmethod
    async def get_dialogue(self, chat_id: ChatKey) -> S | None: ...

    @abstractmethod
    async def update_dialogue(self, chat_id: ChatKey, state: S) -> S | None:
        """Store ``state`` and return the previous one."""

    @abstractmethod
    async def remove_dialogue(self, chat_id: ChatKey) -> S | None:
        """Drop the entry and return what it held."""


class InMemStorage(Storage[S]):
    def __init__(self) -> None:
        self._states: dict[ChatKey, S] = {}
        self._lock: anyio.Lock | None = None

    def _get_lock(self) -> anyio.Lock:
        if self._lock is None:
            self._lock = anyio.Lock()
        return self._lock

    async def get_dialogue(self, chat_id: ChatKey) -> S | None:
        async with self._get_lock():
            return self._states.get(chat_id)

    async def update_dialogue(self, chat_id: ChatKey, state: S) -> S | None:
        async with self._get_lock():
            previous = self._states.get(chat_id)
            self._states[chat_id] = state
            return previous

    async def remove_dialogue(self, chat_id: ChatKey) -> S | None:
        async with self._get_lock():
            return self._states.pop(chat_id, None)

    def __len__(self) -> int:
        return len(self._states)


class TraceStorage(Storage[S]):
    """Wraps another storage and logs every call."""

    def __init__(self, inner: Storage[S]) -> None:
        self.inner = inner

    async def get_dialogue(self, chat_id: ChatKey) -> S | None:
        state = await self.inner.get_dialogue(chat_id)
        logger.debug("storage.get", chat_id=chat_id, state=repr(state))
        return state

    async def update_dialogue(self, chat_id: ChatKey, state: S) -> S | None:
        previous = await self.inner.update_dialogue(chat_id, state)
        logger.debug(
            "storage.update",
            chat_id=chat_id,
            state=repr(state),
            previous=repr(previous),
        )
        return previous

    async def remove_dialogue(self, chat_id: ChatKey) -> S | None:
        previous = await self.inner.remove_dialogue(chat_id)
        logger.debug("storage.remove", chat_id=chat_id, previous=repr(previous))
        return previous
