"""Outbound rate limiting for chat-bound requests.

A single worker task owns all bookkeeping. Callers hand it a request lock
through a bounded queue, wait for the lock to be released, send their
request and report server-side freezes back over an unbounded channel.
"""

from __future__ import annotations

import enum
import itertools
import math
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Hashable

import anyio

from ..api_models import is_channel_or_supergroup
from ..errors import QueueFull, RetryAfter, WorkerGone
from ..logging import get_logger
from ..payloads import Payload, chat_id_of
from ..requests import Adaptor, Requester

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

    from ..shutdown import ShutdownToken

logger = get_logger(__name__)

# Upper bound on how long the worker idles while requests are waiting.
DELAY_S = 0.25
QUEUE_FULL_WARN_INTERVAL_S = 4.0

ChatKey = Hashable


@dataclass(frozen=True, slots=True)
class Limits:
    messages_per_sec_chat: int = 1
    messages_per_min_chat: int = 20
    messages_per_min_channel_or_supergroup: int = 10
    messages_per_sec_overall: int = 30
    # Widens both sliding windows, e.g. to absorb clock skew with the server.
    slack: float = 0.0

    @property
    def second(self) -> float:
        return 1.0 + self.slack

    @property
    def minute(self) -> float:
        return 60.0 + self.slack

    def per_min_for(self, chat: ChatKey) -> int:
        if isinstance(chat, str) and chat.startswith("@"):
            return self.messages_per_min_channel_or_supergroup
        if isinstance(chat, int) and is_channel_or_supergroup(chat):
            return self.messages_per_min_channel_or_supergroup
        return self.messages_per_min_chat


class QueueFullPolicy(enum.Enum):
    WAIT = "wait"
    REJECT = "reject"


def _log_queue_full(pending: int) -> None:
    logger.warning("throttle.queue_full", pending=pending)


@dataclass(slots=True)
class Settings:
    limits: Limits = field(default_factory=Limits)
    on_queue_full: QueueFullPolicy = QueueFullPolicy.WAIT
    retry: bool = True
    queue_size: int | None = None
    queue_full_hook: Callable[[int], None] | None = _log_queue_full

    def resolved_queue_size(self) -> int:
        if self.queue_size is not None:
            return max(1, self.queue_size)
        return max(1, self.limits.messages_per_sec_overall * 4)


class ChatState(enum.Enum):
    FRESH = "fresh"
    NORMAL = "normal"
    FROZEN = "frozen"


class Priority(enum.IntEnum):
    HIGH = 0
    NORMAL = 1


@dataclass(slots=True, eq=False)
class _RequestLock:
    chat: ChatKey | None
    seq: int
    released: anyio.Event = field(default_factory=anyio.Event)
    priority: Priority = Priority.NORMAL
    gone: bool = False
    abandoned: bool = False


@dataclass(frozen=True, slots=True)
class FreezeUntil:
    chat: ChatKey | None
    until: float
    after: float


@dataclass(slots=True)
class _SetLimits:
    limits: Limits
    applied: anyio.Event = field(default_factory=anyio.Event)


class Throttle(Adaptor):
    """Adaptor enforcing per-chat and global send limits.

    The worker runs while the adaptor is entered as an async context
    manager. Only payloads flagged as throttled go through the queue; every
    other method is forwarded immediately.
    """

    def __init__(
        self,
        inner: Requester,
        settings: Settings | None = None,
        *,
        shutdown_token: ShutdownToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(inner)
        self._settings = settings or Settings()
        self._limits = self._settings.limits
        self._queue_size = self._settings.resolved_queue_size()
        self._shutdown_token = shutdown_token
        self._clock = clock
        self._seq = itertools.count()
        self._tg: TaskGroup | None = None
        self._gone = False
        self._last_queue_full_warning: float | None = None
        # channels, created on start
        self._queue_tx: MemoryObjectSendStream[_RequestLock] | None = None
        self._queue_rx: MemoryObjectReceiveStream[_RequestLock] | None = None
        self._control_tx: MemoryObjectSendStream[Any] | None = None
        self._control_rx: MemoryObjectReceiveStream[Any] | None = None
        self._capacity: anyio.CapacityLimiter | None = None
        self._wakeup: anyio.Event | None = None
        # worker-owned state
        self._pending: list[_RequestLock] = []
        self._queued_per_chat: Counter[ChatKey] = Counter()
        self._history: deque[float] = deque()
        self._chat_history: dict[ChatKey, deque[float]] = {}
        self._chat_freeze: dict[ChatKey, float] = {}
        self._global_freeze = 0.0
        self._demoted: set[ChatKey] = set()
        self._seen: set[ChatKey] = set()

    @property
    def settings(self) -> Settings:
        return self._settings

    # lifecycle

    async def __aenter__(self) -> Throttle:
        await self.inner.__aenter__()
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        try:
            await self.stop()
        finally:
            await self.inner.__aexit__(*exc_info)

    async def start(self) -> None:
        if self._tg is not None:
            return
        self._queue_tx, self._queue_rx = anyio.create_memory_object_stream(
            self._queue_size
        )
        self._control_tx, self._control_rx = anyio.create_memory_object_stream(
            math.inf
        )
        self._capacity = anyio.CapacityLimiter(self._queue_size)
        self._wakeup = anyio.Event()
        self._gone = False
        self._tg = await anyio.create_task_group().__aenter__()
        self._tg.start_soon(self._run)
        if self._shutdown_token is not None:
            self._tg.start_soon(self._watch_shutdown, self._shutdown_token)

    async def stop(self) -> None:
        tg, self._tg = self._tg, None
        if tg is None:
            return
        self._fail_all()
        tg.cancel_scope.cancel()
        await tg.__aexit__(None, None, None)

    async def _watch_shutdown(self, token: ShutdownToken) -> None:
        await token.wait_for_shutdown()
        logger.info("throttle.shutdown")
        # the worker notices on its next wakeup and returns
        self._fail_all()
        self._wake()

    # introspection

    async def limits(self) -> Limits:
        return self._limits

    async def set_limits(self, limits: Limits) -> None:
        if self._control_tx is None or self._gone:
            self._limits = limits
            return
        message = _SetLimits(limits)
        self._send_control(message)
        await message.applied.wait()

    def chat_state(self, chat: ChatKey) -> ChatState:
        if self._chat_freeze.get(chat, 0.0) > self._clock():
            return ChatState.FROZEN
        if chat in self._seen or chat in self._demoted:
            return ChatState.NORMAL
        return ChatState.FRESH

    @property
    def pending(self) -> int:
        return len(self._pending)

    # caller side

    async def execute(self, payload: Payload) -> Any:
        if not payload.throttled:
            return await self.inner.execute(payload)
        chat = chat_id_of(payload)
        while True:
            await self._acquire(chat)
            try:
                return await self.inner.execute(payload)
            except RetryAfter as exc:
                until = self._clock() + exc.retry_after
                logger.info(
                    "throttle.freeze",
                    method=payload.method,
                    chat_id=chat,
                    retry_after=exc.retry_after,
                )
                self._send_control(FreezeUntil(chat, until, exc.retry_after))
                if not self._settings.retry:
                    raise

    def _send_control(self, message: Any) -> None:
        if self._control_tx is None:
            raise WorkerGone("throttle worker is not running")
        try:
            self._control_tx.send_nowait(message)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            raise WorkerGone() from None
        self._wake()

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _queue_full(self) -> None:
        hook = self._settings.queue_full_hook
        if hook is None:
            return
        now = self._clock()
        last = self._last_queue_full_warning
        if last is not None and now - last < QUEUE_FULL_WARN_INTERVAL_S:
            return
        self._last_queue_full_warning = now
        hook(self._queue_size)

    async def _acquire(self, chat: ChatKey | None) -> None:
        if self._tg is None or self._gone:
            raise WorkerGone("throttle worker is not running")
        assert self._capacity is not None and self._queue_tx is not None
        lock = _RequestLock(chat=chat, seq=next(self._seq))
        try:
            self._capacity.acquire_on_behalf_of_nowait(lock)
        except anyio.WouldBlock:
            self._queue_full()
            if self._settings.on_queue_full is QueueFullPolicy.REJECT:
                raise QueueFull(self._queue_size) from None
            await self._capacity.acquire_on_behalf_of(lock)
        if self._gone:
            self._capacity.release_on_behalf_of(lock)
            raise WorkerGone()
        try:
            self._queue_tx.send_nowait(lock)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            self._capacity.release_on_behalf_of(lock)
            raise WorkerGone() from None
        self._wake()
        try:
            await lock.released.wait()
        except anyio.get_cancelled_exc_class():
            lock.abandoned = True
            self._wake()
            raise
        if lock.gone:
            raise WorkerGone()

    # worker side

    def _finish(self, lock: _RequestLock) -> None:
        if lock.chat is not None:
            self._queued_per_chat[lock.chat] -= 1
            if self._queued_per_chat[lock.chat] <= 0:
                del self._queued_per_chat[lock.chat]
        if self._capacity is not None:
            self._capacity.release_on_behalf_of(lock)

    def _fail_all(self) -> None:
        if self._gone:
            return
        self._gone = True
        for lock in self._pending:
            lock.gone = True
            lock.released.set()
            self._finish(lock)
        self._pending.clear()
        if self._queue_rx is not None:
            while True:
                try:
                    lock = self._queue_rx.receive_nowait()
                except (anyio.WouldBlock, anyio.EndOfStream, anyio.ClosedResourceError):
                    break
                lock.gone = True
                lock.released.set()
                if self._capacity is not None:
                    self._capacity.release_on_behalf_of(lock)
            self._queue_rx.close()
        if self._control_rx is not None:
            while True:
                try:
                    message = self._control_rx.receive_nowait()
                except (anyio.WouldBlock, anyio.EndOfStream, anyio.ClosedResourceError):
                    break
                if isinstance(message, _SetLimits):
                    self._limits = message.limits
                    message.applied.set()
            self._control_rx.close()

    def _accept(self, lock: _RequestLock) -> None:
        chat = lock.chat
        if (
            chat is not None
            and chat not in self._demoted
            and self._queued_per_chat[chat] == 0
        ):
            lock.priority = Priority.HIGH
        if chat is not None:
            self._queued_per_chat[chat] += 1
        self._pending.append(lock)

    def _drain_queue(self) -> None:
        assert self._queue_rx is not None
        while True:
            try:
                lock = self._queue_rx.receive_nowait()
            except anyio.WouldBlock:
                return
            self._accept(lock)

    def _drain_control(self) -> None:
        assert self._control_rx is not None
        while True:
            try:
                message = self._control_rx.receive_nowait()
            except anyio.WouldBlock:
                return
            if isinstance(message, _SetLimits):
                self._limits = message.limits
                message.applied.set()
                logger.info("throttle.limits_changed", limits=repr(message.limits))
                continue
            self._freeze(message)

    def _freeze(self, message: FreezeUntil) -> None:
        if message.chat is None:
            self._global_freeze = max(self._global_freeze, message.until)
            logger.warning("throttle.global_freeze", retry_after=message.after)
            return
        current = self._chat_freeze.get(message.chat, 0.0)
        self._chat_freeze[message.chat] = max(current, message.until)
        self._demoted.add(message.chat)
        logger.warning(
            "throttle.chat_freeze", chat_id=message.chat, retry_after=message.after
        )

    def _expire(self, now: float) -> None:
        cutoff = now - self._limits.minute
        while self._history and self._history[0] <= cutoff:
            self._history.popleft()
        for chat in list(self._chat_history):
            history = self._chat_history[chat]
            while history and history[0] <= cutoff:
                history.popleft()
            if not history:
                del self._chat_history[chat]
        for chat, until in list(self._chat_freeze.items()):
            if until <= now:
                del self._chat_freeze[chat]

    @staticmethod
    def _count_since(history: deque[float], since: float) -> int:
        count = 0
        for stamp in reversed(history):
            if stamp <= since:
                break
            count += 1
        return count

    def _can_release(self, chat: ChatKey | None, now: float) -> bool:
        limits = self._limits
        second_ago = now - limits.second
        if self._count_since(self._history, second_ago) >= (
            limits.messages_per_sec_overall
        ):
            return False
        if chat is None:
            return True
        if self._chat_freeze.get(chat, 0.0) > now:
            return False
        history = self._chat_history.get(chat)
        if history is None:
            return True
        if self._count_since(history, second_ago) >= limits.messages_per_sec_chat:
            return False
        return len(history) < limits.per_min_for(chat)

    def _release_ready(self, now: float) -> None:
        blocked: set[ChatKey] = set()
        remaining: list[_RequestLock] = []
        for lock in sorted(self._pending, key=lambda item: (item.priority, item.seq)):
            if lock.abandoned:
                self._finish(lock)
                continue
            chat = lock.chat
            if chat is not None and chat in blocked:
                remaining.append(lock)
                continue
            if not self._can_release(chat, now):
                if chat is not None:
                    blocked.add(chat)
                remaining.append(lock)
                continue
            self._history.append(now)
            if chat is not None:
                self._chat_history.setdefault(chat, deque()).append(now)
                self._seen.add(chat)
            lock.released.set()
            self._finish(lock)
        remaining.sort(key=lambda item: item.seq)
        self._pending = remaining

    async def _idle(self, timeout: float | None) -> None:
        assert self._wakeup is not None
        with anyio.move_on_after(timeout):
            await self._wakeup.wait()
        if self._wakeup.is_set():
            self._wakeup = anyio.Event()

    async def _run(self) -> None:
        cancel_exc = anyio.get_cancelled_exc_class()
        try:
            while not self._gone:
                self._drain_control()
                self._drain_queue()
                now = self._clock()
                self._expire(now)
                if self._global_freeze > now:
                    await self._idle(self._global_freeze - now)
                    continue
                self._release_ready(now)
                await self._idle(DELAY_S if self._pending else None)
        except cancel_exc:
            raise
        except Exception as exc:
            logger.error(
                "throttle.worker_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
        finally:
            self._fail_all()
