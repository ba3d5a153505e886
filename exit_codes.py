"""
Exit code definitions for FizzBuzz server shutdown scenarios.

Process managers only get to see 0 or 1 from this service: 0 after a clean
shutdown, 1 for a fatal startup error, a failed server task or a forced quit.
The manager below keeps the detail needed for the final log line.
"""

import enum


class ShutdownExitCode(enum.IntEnum):
    """Exit codes for different shutdown scenarios."""

    SUCCESS = 0  # Clean shutdown after a signal or shutdown request
    FAILURE = 1  # Startup error, server task failure or forced quit


class ExitCodeManager:
    """Collects shutdown events and turns them into a process exit code."""

    def __init__(self, logger):
        self.logger = logger
        self._task_failures: list[tuple[str, str]] = []
        self._drain_timeouts: list[tuple[str, float]] = []

    def report_task_failure(self, component: str, error: BaseException):
        """Report a server task that stopped with an error."""
        self.logger.error(f"Task failure in {component}: {error}")
        self._task_failures.append((component, str(error)))

    def report_drain_timeout(self, component: str, deadline: float):
        """Report a graceful drain that exceeded its deadline.

        Connections are force-closed at that point; this is recovered and
        does not change the exit code.
        """
        self.logger.warning(
            f"Drain of {component} exceeded {deadline}s, remaining connections closed"
        )
        self._drain_timeouts.append((component, deadline))

    def has_failures(self) -> bool:
        return bool(self._task_failures)

    def determine_exit_code(self, shutdown_reason: str = "manual") -> ShutdownExitCode:
        """Determine the appropriate exit code based on shutdown events."""
        if self._task_failures:
            components = ", ".join(name for name, _ in self._task_failures)
            self.logger.error(
                f"Exiting with {ShutdownExitCode.FAILURE.name} "
                f"({int(ShutdownExitCode.FAILURE)}): failed tasks: {components}"
            )
            return ShutdownExitCode.FAILURE

        self.logger.info(
            f"Exiting with {ShutdownExitCode.SUCCESS.name} "
            f"({int(ShutdownExitCode.SUCCESS)}) after {shutdown_reason}"
        )
        return ShutdownExitCode.SUCCESS

    def get_exit_summary(self) -> dict:
        """Get a summary of all shutdown events for logging."""
        return {
            "task_failures": [
                {"component": name, "error": error}
                for name, error in self._task_failures
            ],
            "drain_timeouts": [name for name, _ in self._drain_timeouts],
            "total_problems": len(self._task_failures) + len(self._drain_timeouts),
        }


def get_exit_code_description(code: ShutdownExitCode) -> str:
    """Get human-readable description of exit code."""
    descriptions = {
        ShutdownExitCode.SUCCESS: "Servers shut down cleanly",
        ShutdownExitCode.FAILURE: "Fatal startup error, server failure or forced quit",
    }
    return descriptions.get(code, f"Unknown exit code: {code}")
