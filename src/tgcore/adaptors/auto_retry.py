from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import anyio

from ..backoff import BackoffStrategy, exponential_backoff
from ..errors import NetworkError, RetryAfter
from ..logging import get_logger
from ..payloads import Payload
from ..requests import Adaptor, Requester

logger = get_logger(__name__)


class AutoRetry(Adaptor):
    """Retries flood-control rejections and transient network failures.

    ``RetryAfter(n)`` waits at least ``n`` seconds; network errors back off
    exponentially. After ``max_retries`` attempts the last error propagates.
    """

    def __init__(
        self,
        inner: Requester,
        *,
        max_retries: int = 5,
        network_backoff: BackoffStrategy = exponential_backoff,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        super().__init__(inner)
        self.max_retries = max_retries
        self._network_backoff = network_backoff
        self._sleep = sleep
        self.retries = 0

    async def execute(self, payload: Payload) -> Any:
        attempt = 0
        while True:
            try:
                return await self.inner.execute(payload)
            except RetryAfter as exc:
                if attempt >= self.max_retries:
                    raise
                delay = exc.retry_after
                logger.info(
                    "auto_retry.retry_after",
                    method=payload.method,
                    retry_after=delay,
                    attempt=attempt + 1,
                )
            except NetworkError as exc:
                if attempt >= self.max_retries:
                    raise
                delay = self._network_backoff(attempt)
                logger.warning(
                    "auto_retry.network_error",
                    method=payload.method,
                    error=str(exc),
                    delay=delay,
                    attempt=attempt + 1,
                )
            attempt += 1
            self.retries += 1
            await self._sleep(delay)
