from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

import anyio
import msgspec

from ..api_models import decode_update, decode_update_id
from ..backoff import BackoffStrategy, exponential_backoff
from ..errors import RequestError, Unauthorized, UpdateParseError, excerpt
from ..logging import get_logger
from ..payloads import LONG_POLL_SLACK_S, GetUpdatesNonStrict
from ..requests import Requester
from .base import ListenerEvent, UpdateListener

if TYPE_CHECKING:
    from ..shutdown import ShutdownToken

logger = get_logger(__name__)

DEFAULT_POLL_TIMEOUT_S = 10


class Polling(UpdateListener):
    """Long-polling listener driving ``getUpdates``.

    ``offset`` only moves past an update once the consumer took it, so a
    stop between batches never loses updates.
    """

    def __init__(
        self,
        bot: Requester,
        *,
        timeout: int = DEFAULT_POLL_TIMEOUT_S,
        limit: int | None = None,
        allowed_updates: list[str] | None = None,
        drop_pending_updates: bool = False,
        backoff_strategy: BackoffStrategy = exponential_backoff,
        shutdown_token: ShutdownToken | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__()
        self.bot = bot
        self.timeout = timeout
        self.limit = limit
        self.allowed_updates = allowed_updates
        self.drop_pending_updates = drop_pending_updates
        self.backoff_strategy = backoff_strategy
        self.offset = 0
        self._shutdown_token = shutdown_token
        self._sleep = sleep
        self._stop_requested = False
        self._stopped: anyio.Event | None = None

    def timeout_hint(self) -> float | None:
        return self.timeout + LONG_POLL_SLACK_S

    def stop(self) -> None:
        self._stop_requested = True
        if self._stopped is not None:
            self._stopped.set()

    @property
    def stopping(self) -> bool:
        if self._stop_requested:
            return True
        token = self._shutdown_token
        return token is not None and token.is_shutting_down()

    async def __aenter__(self) -> Polling:
        self._stop_requested = False
        self._stopped = anyio.Event()
        return self

    async def _backoff(self, delay: float) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
            return
        assert self._stopped is not None
        with anyio.move_on_after(delay):
            await self._stopped.wait()

    async def _get_updates(self, **params: Any) -> list[msgspec.Raw]:
        return await self.bot.execute(GetUpdatesNonStrict(**params))

    async def _drop_pending(self) -> None:
        raws = await self._get_updates(offset=-1, limit=1, timeout=0)
        for raw in raws:
            update_id = decode_update_id(raw)
            if update_id is not None:
                self.offset = max(self.offset, update_id + 1)
        logger.info("polling.dropped_pending_updates", offset=self.offset)

    async def _confirm(self) -> None:
        if not self.offset:
            return
        try:
            await self._get_updates(offset=self.offset, limit=1, timeout=0)
        except RequestError as exc:
            logger.warning(
                "polling.confirm_failed",
                offset=self.offset,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def events(self) -> AsyncGenerator[ListenerEvent, None]:
        if self._stopped is None:
            self._stopped = anyio.Event()
        error_count = 0
        if self.drop_pending_updates:
            try:
                await self._drop_pending()
            except Unauthorized as exc:
                yield exc
                return
            except RequestError as exc:
                yield exc
        while not self.stopping:
            try:
                raws = await self._get_updates(
                    offset=self.offset or None,
                    timeout=self.timeout,
                    limit=self.limit,
                    allowed_updates=self.allowed_updates,
                )
            except Unauthorized as exc:
                logger.error("polling.unauthorized", error=str(exc))
                yield exc
                return
            except RequestError as exc:
                delay = self.backoff_strategy(error_count)
                error_count += 1
                logger.warning(
                    "polling.backoff",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    delay=delay,
                )
                yield exc
                await self._backoff(delay)
                continue
            error_count = 0
            if raws:
                logger.debug("polling.batch", count=len(raws), offset=self.offset)
            for raw in raws:
                try:
                    update = decode_update(raw)
                except msgspec.DecodeError as exc:
                    update_id = decode_update_id(raw)
                    text = bytes(raw).decode("utf-8", errors="replace")
                    logger.error(
                        "polling.parse_error",
                        update_id=update_id,
                        error=str(exc),
                        body=excerpt(text),
                    )
                    yield UpdateParseError(str(exc), update_id=update_id, raw=text)
                    if update_id is not None:
                        self.offset = max(self.offset, update_id + 1)
                    continue
                if update.update_id < self.offset:
                    logger.debug(
                        "polling.duplicate_update",
                        update_id=update.update_id,
                        offset=self.offset,
                    )
                    continue
                yield update
                self.offset = update.update_id + 1
        await self._confirm()
        logger.info("polling.stopped", offset=self.offset)


async def polling_default(
    bot: Requester, *, shutdown_token: ShutdownToken | None = None
) -> Polling:
    """Polling with default settings after removing any webhook."""
    await bot.delete_webhook()
    return Polling(bot, shutdown_token=shutdown_token)
