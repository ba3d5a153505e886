"""
OS termination signal handling with forced-quit escalation

The first SIGINT/SIGTERM cancels the lifecycle signal and starts a graceful
drain. Reaching the force-quit threshold (two signals by default) exits the
process immediately from inside the signal handler, so a hung drain or a
blocked event loop cannot keep the process alive.
"""

import asyncio
import enum
import itertools
import logging
import os
import signal
from collections.abc import Callable, Iterable
from types import FrameType
from typing import Any

from constants import FORCE_QUIT_SIGNAL_COUNT
from exit_codes import ShutdownExitCode
from lifecycle_signal import LifecycleSignal

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TerminationState(enum.Enum):
    IDLE = "idle"  # no termination request yet
    GRACEFUL = "graceful"  # draining after the first request
    FORCED = "forced"  # threshold reached, process is exiting


class SignalListener:
    """Bridges termination signals into a LifecycleSignal.

    Counts every termination signal received; at ``force_quit_threshold``
    it calls ``exit_func`` (``os._exit`` in production) without running any
    cleanup.
    """

    def __init__(
        self,
        lifecycle: LifecycleSignal,
        logger: logging.Logger | None = None,
        force_quit_threshold: int = FORCE_QUIT_SIGNAL_COUNT,
        exit_func: Callable[[int], Any] = os._exit,
        signals: Iterable[signal.Signals] = HANDLED_SIGNALS,
    ):
        self.lifecycle = lifecycle
        self.logger = logger or logging.getLogger(__name__)
        self.force_quit_threshold = force_quit_threshold
        self._exit_func = exit_func
        self._signals = tuple(signals)
        # next() on itertools.count is atomic, even if a second signal
        # interrupts the handler of the first
        self._counter = itertools.count(1)
        self._termination_count = 0
        self._old_handlers: dict[signal.Signals, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped: asyncio.Event | None = None

    @property
    def termination_count(self) -> int:
        return self._termination_count

    @property
    def state(self) -> TerminationState:
        if self._termination_count >= self.force_quit_threshold:
            return TerminationState.FORCED
        if self._termination_count > 0:
            return TerminationState.GRACEFUL
        return TerminationState.IDLE

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register handlers for the termination signals.

        Must be called from the main thread.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        for sig in self._signals:
            self._old_handlers[sig] = signal.signal(sig, self.handle_signal)
        names = ", ".join(sig.name for sig in self._signals)
        self.logger.debug(f"Signal handlers registered for {names}")

    def uninstall(self) -> None:
        """Restore the handlers that were active before ``install``."""
        for sig, handler in self._old_handlers.items():
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                self.logger.warning(f"Could not restore handler for {sig.name}: {e}")
        self._old_handlers.clear()

    def handle_signal(self, signum: int, frame: FrameType | None = None) -> None:
        """Signal handler: count the request, escalate or cancel the lifecycle."""
        count = next(self._counter)
        self._termination_count = count
        signal_name = signal.Signals(signum).name
        self.logger.info(
            f"Caught signal {signum} ({signal_name}), termination request {count}"
        )

        if count >= self.force_quit_threshold:
            self.logger.error(
                f"Force quit! {count} termination signals received, exiting without drain"
            )
            for handler in logging.getLogger().handlers:
                handler.flush()
            self._exit_func(int(ShutdownExitCode.FAILURE))
            return

        self._request_cancel(f"signal_{signal_name}")

    def _request_cancel(self, reason: str) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            # the handler may interrupt code that holds the lifecycle lock;
            # defer the cancel to the loop
            loop.call_soon_threadsafe(self.lifecycle.cancel, reason)
        else:
            self.lifecycle.cancel(reason)

    async def run(self) -> None:
        """Watch the lifecycle signal until ``stop`` is called.

        Logs cancellations that did not come from a signal; escalation keeps
        working afterwards because the handlers stay installed.
        """
        if self._stopped is None:
            self._stopped = asyncio.Event()
        reason = await self.lifecycle.wait()
        if self._termination_count == 0:
            self.logger.info(
                f"Lifecycle cancelled before any signal ({reason}), "
                "still listening for termination signals"
            )
        await self._stopped.wait()

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
