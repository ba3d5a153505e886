"""
Lifecycle coordination for the API and admin servers

Starts every server handle concurrently, lets the first failure or
termination request cancel the shared lifecycle signal, then drains all
handles with the same bounded deadline and waits for every task before
deciding the exit code.
"""

import asyncio
import logging

from exit_codes import ExitCodeManager, ShutdownExitCode
from lifecycle_signal import LifecycleSignal
from server_handle import ServerHandle
from signal_listener import SignalListener
from system_utils import log_system_state


class LifecycleCoordinator:
    """Orchestrates startup, failure propagation and graceful shutdown"""

    def __init__(
        self,
        lifecycle: LifecycleSignal,
        signal_listener: SignalListener,
        handles: list[ServerHandle],
        shutdown_timeout: float,
        logger: logging.Logger | None = None,
        exit_code_manager: ExitCodeManager | None = None,
    ):
        self.lifecycle = lifecycle
        self.signal_listener = signal_listener
        # shutdown is issued in this order
        self.handles = list(handles)
        self.shutdown_timeout = shutdown_timeout
        self.logger = logger or logging.getLogger(__name__)
        self.exit_code_manager = exit_code_manager or ExitCodeManager(self.logger)

    async def run(self) -> ShutdownExitCode:
        """Run all servers until the lifecycle signal is cancelled.

        Returns:
            SUCCESS if every server stopped because it was shut down,
            FAILURE if any server task ended with an error
        """
        loop = asyncio.get_running_loop()
        self.lifecycle.bind_loop(loop)
        self.signal_listener.install(loop)
        listener_task = asyncio.create_task(
            self.signal_listener.run(), name="signal-listener"
        )
        log_system_state(self.logger, "STARTING")

        tasks = [
            asyncio.create_task(self._run_handle(handle), name=f"{handle.name}-server")
            for handle in self.handles
        ]

        try:
            # wait until a signal arrives or one of the servers stops
            reason = await self.lifecycle.wait()
            self.logger.info(f"Main context cancelled ({reason}), shutting down servers")

            await self.shutdown_handles(self.shutdown_timeout)
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self.signal_listener.stop()
            await listener_task
            self.signal_listener.uninstall()

        for handle, result in zip(self.handles, results):
            if isinstance(result, BaseException):
                self.exit_code_manager.report_task_failure(f"{handle.name}_server", result)

        self.logger.info(
            f"All servers shut down: {self.exit_code_manager.get_exit_summary()}"
        )
        log_system_state(self.logger, "SHUTDOWN_COMPLETE")
        return self.exit_code_manager.determine_exit_code(reason)

    async def _run_handle(self, handle: ServerHandle) -> None:
        self.logger.info(f"Start {handle.name} server... addr={handle.address}")
        try:
            await handle.run()
        except Exception as e:
            self.logger.error(f"{handle.name} server failed: {e}")
            raise
        finally:
            self.logger.info(f"{handle.name} server stopped")
            # one server stopping takes the others down with it
            self.lifecycle.cancel(f"{handle.name}_server_stopped")

    async def shutdown_handles(self, deadline: float) -> None:
        """Issue ``shutdown(deadline)`` to every handle independently.

        A handle that overruns its deadline does not delay the others.
        """
        results = await asyncio.gather(
            *(handle.shutdown(deadline) for handle in self.handles),
            return_exceptions=True,
        )
        for handle, drained in zip(self.handles, results):
            if isinstance(drained, BaseException):
                self.exit_code_manager.report_task_failure(
                    f"{handle.name}_shutdown", drained
                )
            elif not drained:
                self.exit_code_manager.report_drain_timeout(handle.name, deadline)
