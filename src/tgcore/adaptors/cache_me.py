from __future__ import annotations

from typing import Any

import anyio

from ..api_models import Me
from ..payloads import GetMe, Payload
from ..requests import Adaptor, Requester


class CacheMe(Adaptor):
    """Answers ``getMe`` from the first successful response."""

    def __init__(self, inner: Requester) -> None:
        super().__init__(inner)
        self._me: Me | None = None
        self._lock: anyio.Lock | None = None

    async def execute(self, payload: Payload) -> Any:
        if not isinstance(payload, GetMe):
            return await self.inner.execute(payload)
        if self._me is not None:
            return self._me
        if self._lock is None:
            self._lock = anyio.Lock()
        async with self._lock:
            if self._me is None:
                self._me = await self.inner.execute(payload)
        return self._me

    def forget(self) -> None:
        self._me = None
