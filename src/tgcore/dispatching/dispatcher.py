from __future__ import annotations

import signal
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio

from ..api_models import Update
from ..logging import get_logger
from ..requests import Requester
from ..shutdown import ShutdownToken
from ..update_listeners import UpdateListener, polling_default
from .di import DependencyMap
from .distribution import DistributionFunction, default_distribution_function
from .error_handlers import LoggingErrorHandler, call_error_handler
from .handler import Break, Handler

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

logger = get_logger(__name__)

DEFAULT_WORKER_QUEUE_SIZE = 64

DefaultHandler = Callable[[Update], Awaitable[None]]


async def log_unhandled_update(update: Update) -> None:
    logger.debug(
        "dispatcher.unhandled_update",
        update_id=update.update_id,
        kind=update.kind.value if update.kind is not None else None,
    )


@dataclass(slots=True, eq=False)
class _Worker:
    key: Hashable
    send: MemoryObjectSendStream[Update]
    idle: bool = True
    pending: int = 0


class Dispatcher:
    """Feeds listener updates through a handler tree.

    Updates sharing a distribution key are handled one at a time in arrival
    order by a dedicated worker; updates whose key is ``None`` are handled
    concurrently.
    """

    def __init__(
        self,
        bot: Requester,
        handler: Handler,
        *,
        dependencies: DependencyMap | Iterable[Any] | None = None,
        distribution_function: DistributionFunction = default_distribution_function,
        default_handler: DefaultHandler | None = None,
        error_handler: Callable[[BaseException], Awaitable[None]] | None = None,
        worker_queue_size: int = DEFAULT_WORKER_QUEUE_SIZE,
        drain_timeout: float | None = None,
        ctrlc_handler: bool = False,
        shutdown_token: ShutdownToken | None = None,
    ) -> None:
        self.bot = bot
        self.handler = handler
        if isinstance(dependencies, DependencyMap):
            self.dependencies = dependencies
        else:
            self.dependencies = DependencyMap()
            self.dependencies.insert_all(dependencies or ())
        self.distribution_function = distribution_function
        self.default_handler = default_handler or log_unhandled_update
        self.error_handler = error_handler or LoggingErrorHandler()
        self.worker_queue_size = worker_queue_size
        self.drain_timeout = drain_timeout
        self.ctrlc_handler = ctrlc_handler
        self._token = shutdown_token or ShutdownToken()
        self._workers: dict[Hashable, _Worker] = {}
        self._active = 0
        self._peak_active = 0

    def shutdown_token(self) -> ShutdownToken:
        return self._token

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    async def dispatch(self) -> None:
        listener = await polling_default(self.bot, shutdown_token=self._token)
        await self.dispatch_with_listener(listener)

    async def dispatch_with_listener(
        self,
        listener: UpdateListener,
        listener_error_handler: Callable[[BaseException], Awaitable[None]]
        | None = None,
    ) -> None:
        listener_error_handler = listener_error_handler or LoggingErrorHandler(
            "dispatcher.listener_error"
        )
        me = await self.bot.get_me()
        deps = DependencyMap()
        deps.insert(self.bot)
        deps.insert(me)
        deps.insert(listener)
        deps.insert(self._token)
        deps.update(self.dependencies)

        description = self.handler.description()
        listener.hint_allowed_updates(description.kinds)
        logger.info(
            "dispatcher.start",
            bot=me.username,
            allowed_updates=description.allowed_updates(),
        )

        self._token.start_dispatching()
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._watch_shutdown, listener)
                if self.ctrlc_handler:
                    tg.start_soon(self._handle_signals)
                await self._run(listener, listener_error_handler, deps)
                tg.cancel_scope.cancel()
        finally:
            self._workers.clear()
            self._token.done()
            logger.info("dispatcher.stopped")

    async def _run(
        self,
        listener: UpdateListener,
        listener_error_handler: Callable[[BaseException], Awaitable[None]],
        deps: DependencyMap,
    ) -> None:
        async with anyio.create_task_group() as workers:
            async with listener:
                async for event in listener:
                    if isinstance(event, Update):
                        await self._route(event, workers, deps)
                    else:
                        await call_error_handler(listener_error_handler, event)
            logger.info("dispatcher.draining", workers=len(self._workers))
            for worker in self._workers.values():
                worker.send.close()
            self._workers.clear()
            if self.drain_timeout is not None:
                workers.cancel_scope.deadline = (
                    anyio.current_time() + self.drain_timeout
                )

    async def _watch_shutdown(self, listener: UpdateListener) -> None:
        await self._token.wait_for_shutdown()
        logger.info(
            "dispatcher.shutdown_requested",
            expected_wait_s=listener.timeout_hint(),
        )
        listener.stop()

    async def _handle_signals(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                logger.info("dispatcher.signal", signal=signal.Signals(signum).name)
                if not self._token.shutdown():
                    logger.warning("dispatcher.not_running")

    async def _route(
        self, update: Update, workers: TaskGroup, deps: DependencyMap
    ) -> None:
        key = self.distribution_function(update)
        if key is None:
            workers.start_soon(self._process, update, deps)
            return
        worker = self._workers.get(key)
        if worker is None:
            self._reap_idle_workers()
            send, receive = anyio.create_memory_object_stream(self.worker_queue_size)
            worker = _Worker(key, send)
            self._workers[key] = worker
            workers.start_soon(self._run_worker, worker, receive, deps)
        worker.pending += 1
        worker.idle = False
        await worker.send.send(update)

    def _reap_idle_workers(self) -> None:
        if len(self._workers) <= self._peak_active:
            return
        for key, worker in list(self._workers.items()):
            if worker.idle and worker.pending == 0:
                worker.send.close()
                del self._workers[key]

    async def _run_worker(
        self,
        worker: _Worker,
        receive: MemoryObjectReceiveStream[Update],
        deps: DependencyMap,
    ) -> None:
        async with receive:
            async for update in receive:
                self._active += 1
                self._peak_active = max(self._peak_active, self._active)
                try:
                    await self._process(update, deps)
                finally:
                    self._active -= 1
                    worker.pending -= 1
                    worker.idle = worker.pending == 0

    async def _process(self, update: Update, deps: DependencyMap) -> None:
        scoped = deps.with_value(update)
        try:
            result = await self.handler.dispatch(scoped)
        except Exception as exc:
            await call_error_handler(self.error_handler, exc)
            return
        if isinstance(result, Break):
            if result.error is not None:
                await call_error_handler(self.error_handler, result.error)
            return
        try:
            await self.default_handler(update)
        except Exception as exc:
            logger.error(
                "dispatcher.default_handler_failed",
                update_id=update.update_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
