"""
Tests for termination signal handling and forced-quit escalation.
"""

import asyncio
import os
import signal
from unittest.mock import Mock

import pytest

from lifecycle_signal import LifecycleSignal
from signal_listener import SignalListener, TerminationState


@pytest.fixture
def exit_func():
    return Mock()


@pytest.fixture
def listener(lifecycle, test_logger, exit_func):
    return SignalListener(lifecycle, logger=test_logger, exit_func=exit_func)


async def drain_callbacks():
    # call_soon_threadsafe callbacks run on the next loop iterations
    for _ in range(3):
        await asyncio.sleep(0)


class TestHandleSignal:
    """Drive the handler directly"""

    def test_first_signal_cancels_without_loop(self, listener, lifecycle, exit_func):
        listener.handle_signal(signal.SIGINT)

        assert lifecycle.get_reason() == "signal_SIGINT"
        assert listener.termination_count == 1
        assert listener.state is TerminationState.GRACEFUL
        exit_func.assert_not_called()

    def test_second_signal_forces_exit(self, listener, exit_func):
        listener.handle_signal(signal.SIGTERM)
        listener.handle_signal(signal.SIGINT)

        exit_func.assert_called_once_with(1)
        assert listener.state is TerminationState.FORCED

    def test_custom_threshold(self, lifecycle, exit_func):
        listener = SignalListener(lifecycle, force_quit_threshold=3, exit_func=exit_func)

        listener.handle_signal(signal.SIGTERM)
        listener.handle_signal(signal.SIGTERM)
        exit_func.assert_not_called()

        listener.handle_signal(signal.SIGTERM)
        exit_func.assert_called_once_with(1)

    def test_non_signal_cancellation_does_not_count(self, listener, lifecycle, exit_func):
        lifecycle.cancel("api_server_stopped")
        assert listener.state is TerminationState.IDLE

        listener.handle_signal(signal.SIGTERM)
        exit_func.assert_not_called()
        assert lifecycle.get_reason() == "api_server_stopped"

        listener.handle_signal(signal.SIGTERM)
        exit_func.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_cancel_is_deferred_to_loop(self, listener, lifecycle):
        listener.install()
        try:
            listener.handle_signal(signal.SIGTERM)
            assert not lifecycle.is_cancelled()

            await drain_callbacks()
            assert lifecycle.get_reason() == "signal_SIGTERM"
        finally:
            listener.uninstall()


class TestInstalledHandlers:
    """Deliver real signals to the process"""

    @pytest.mark.asyncio
    async def test_sigterm_cancels_lifecycle(self, listener, lifecycle, exit_func):
        listener.install()
        try:
            os.kill(os.getpid(), signal.SIGTERM)
            reason = await asyncio.wait_for(lifecycle.wait(), 2)
        finally:
            listener.uninstall()

        assert reason == "signal_SIGTERM"
        exit_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_two_signals_force_exit(self, listener, exit_func):
        listener.install()
        try:
            os.kill(os.getpid(), signal.SIGINT)
            await drain_callbacks()
            os.kill(os.getpid(), signal.SIGTERM)
            await drain_callbacks()
        finally:
            listener.uninstall()

        exit_func.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_uninstall_restores_previous_handlers(self, listener):
        previous = signal.getsignal(signal.SIGTERM)

        listener.install()
        assert signal.getsignal(signal.SIGTERM) == listener.handle_signal
        listener.uninstall()

        assert signal.getsignal(signal.SIGTERM) == previous


class TestListenerRun:
    @pytest.mark.asyncio
    async def test_run_keeps_listening_until_stopped(self, listener, lifecycle):
        listener.install()
        try:
            task = asyncio.create_task(listener.run())
            lifecycle.cancel("admin_server_stopped")
            await drain_callbacks()
            assert not task.done()

            listener.stop()
            await asyncio.wait_for(task, 1)
        finally:
            listener.uninstall()

    @pytest.mark.asyncio
    async def test_stop_before_run(self, exit_func):
        listener = SignalListener(LifecycleSignal(), exit_func=exit_func)
        listener.install()
        try:
            listener.stop()
            listener.lifecycle.cancel("done")
            await asyncio.wait_for(listener.run(), 1)
        finally:
            listener.uninstall()
