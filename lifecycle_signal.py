"""
Process-wide cancellation signal

A single LifecycleSignal is shared by the signal listener, every server task
and the coordinator. It moves from active to cancelled exactly once; later
cancel requests are ignored and cancellation callbacks run only once.
"""

import asyncio
import enum
import logging
import threading
from collections.abc import Callable


class LifecycleState(enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class LifecycleSignal:
    """Idempotent cancellation token observable from asyncio tasks.

    ``cancel`` may be called from any thread, including a signal handler
    running on the main thread; waiters are woken on the bound event loop.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._state = LifecycleState.ACTIVE
        self._reason: str | None = None
        self._callbacks: list[Callable[[str], None]] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._event: asyncio.Event | None = None

    def bind_loop(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> asyncio.Event:
        """Attach the signal to the event loop that waits on it.

        Binding again to the same loop keeps the existing event so that tasks
        already waiting are still woken by ``cancel``.
        """
        loop = loop or asyncio.get_running_loop()
        with self._lock:
            if self._event is None or self._loop is not loop:
                self._loop = loop
                self._event = asyncio.Event()
            if self._state is LifecycleState.CANCELLED:
                self._event.set()
            return self._event

    @property
    def state(self) -> LifecycleState:
        return self._state

    def is_cancelled(self) -> bool:
        return self._state is LifecycleState.CANCELLED

    def get_reason(self) -> str | None:
        """Get the reason given by the first cancel request"""
        return self._reason

    def add_callback(self, callback: Callable[[str], None]) -> None:
        """Run ``callback(reason)`` once when the signal is cancelled.

        Runs immediately if the signal is already cancelled.
        """
        with self._lock:
            if self._state is LifecycleState.ACTIVE:
                self._callbacks.append(callback)
                return
            reason = self._reason
        callback(reason or "")

    def cancel(self, reason: str = "manual") -> bool:
        """Cancel the signal.

        Returns:
            True if this call performed the transition, False if it was
            already cancelled
        """
        with self._lock:
            if self._state is LifecycleState.CANCELLED:
                self.logger.debug(
                    f"Lifecycle already cancelled ({self._reason}), ignoring: {reason}"
                )
                return False
            self._state = LifecycleState.CANCELLED
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
            loop, event = self._loop, self._event

        self.logger.info(f"Lifecycle cancelled: {reason}")
        if loop is not None and event is not None:
            self._wake(loop, event)

        for callback in callbacks:
            try:
                callback(reason)
            except Exception as e:
                self.logger.error(f"Lifecycle cancel callback failed: {e}")
        return True

    @staticmethod
    def _wake(loop: asyncio.AbstractEventLoop, event: asyncio.Event) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            event.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(event.set)

    async def wait(self) -> str:
        """Block until the signal is cancelled and return the reason"""
        event = self.bind_loop()
        await event.wait()
        return self._reason or ""
