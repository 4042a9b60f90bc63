from __future__ import annotations

import enum

import anyio

from .logging import get_logger

logger = get_logger(__name__)


class DispatcherState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class AlreadyRunning(RuntimeError):
    pass


class ShutdownToken:
    """Cooperative stop signal shared by the dispatcher, listeners and workers.

    ``shutdown()`` is idempotent and does nothing while no dispatcher is
    running. Waiters get woken on every state transition.
    """

    def __init__(self) -> None:
        self._state = DispatcherState.IDLE
        self._changed: anyio.Event | None = None

    @property
    def state(self) -> DispatcherState:
        return self._state

    def _set_state(self, state: DispatcherState) -> None:
        if state is self._state:
            return
        logger.debug(
            "shutdown_token.transition", old=self._state.value, new=state.value
        )
        self._state = state
        changed, self._changed = self._changed, None
        if changed is not None:
            changed.set()

    def is_running(self) -> bool:
        return self._state is DispatcherState.RUNNING

    def is_shutting_down(self) -> bool:
        return self._state is DispatcherState.SHUTTING_DOWN

    def shutdown(self) -> bool:
        """Ask the running dispatcher to stop; returns ``False`` when idle."""
        if self._state is DispatcherState.IDLE:
            return False
        self._set_state(DispatcherState.SHUTTING_DOWN)
        return True

    async def wait_for_changes(self) -> None:
        if self._changed is None:
            self._changed = anyio.Event()
        await self._changed.wait()

    async def wait_for_shutdown(self) -> None:
        while self._state is not DispatcherState.SHUTTING_DOWN:
            await self.wait_for_changes()

    async def wait_until_idle(self) -> None:
        while self._state is not DispatcherState.IDLE:
            await self.wait_for_changes()

    def start_dispatching(self) -> None:
        if self._state is not DispatcherState.IDLE:
            raise AlreadyRunning("dispatcher is already running")
        self._set_state(DispatcherState.RUNNING)

    def done(self) -> None:
        self._set_state(DispatcherState.IDLE)
