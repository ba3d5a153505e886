"""
Tests for exit code system functionality.
"""

import pytest

from exit_codes import ExitCodeManager, ShutdownExitCode, get_exit_code_description


class TestShutdownExitCode:
    """Test the ShutdownExitCode enum."""

    def test_values(self):
        """Process managers only see 0 or 1."""
        assert ShutdownExitCode.SUCCESS == 0
        assert ShutdownExitCode.FAILURE == 1
        assert len(ShutdownExitCode) == 2


class TestExitCodeManager:
    """Test the ExitCodeManager class."""

    @pytest.fixture
    def manager(self, mock_logger):
        """Create an ExitCodeManager instance."""
        return ExitCodeManager(mock_logger)

    def test_clean_shutdown(self, manager, mock_logger):
        """No reports means a clean exit."""
        assert not manager.has_failures()
        assert manager.determine_exit_code("signal_SIGTERM") == ShutdownExitCode.SUCCESS
        mock_logger.info.assert_called_once_with(
            "Exiting with SUCCESS (0) after signal_SIGTERM"
        )

    def test_report_task_failure(self, manager, mock_logger):
        """Test reporting a failed server task."""
        manager.report_task_failure("api_server", OSError("address already in use"))

        mock_logger.error.assert_called_once_with(
            "Task failure in api_server: address already in use"
        )
        assert manager.has_failures()
        assert manager.determine_exit_code() == ShutdownExitCode.FAILURE

    def test_drain_timeout_does_not_fail(self, manager, mock_logger):
        """A drain past its deadline is recovered by force-closing."""
        manager.report_drain_timeout("admin", 3.0)

        mock_logger.warning.assert_called_once_with(
            "Drain of admin exceeded 3.0s, remaining connections closed"
        )
        assert not manager.has_failures()
        assert manager.determine_exit_code() == ShutdownExitCode.SUCCESS

    def test_failure_wins_over_drain_timeout(self, manager):
        manager.report_drain_timeout("admin", 3.0)
        manager.report_task_failure("api_server", RuntimeError("boom"))

        assert manager.determine_exit_code() == ShutdownExitCode.FAILURE

    def test_get_exit_summary(self, manager):
        """Test getting exit summary."""
        manager.report_task_failure("admin_server", RuntimeError("boom"))
        manager.report_drain_timeout("api", 3.0)

        summary = manager.get_exit_summary()

        assert summary == {
            "task_failures": [{"component": "admin_server", "error": "boom"}],
            "drain_timeouts": ["api"],
            "total_problems": 2,
        }

    def test_empty_summary(self, manager):
        assert manager.get_exit_summary()["total_problems"] == 0


class TestExitCodeDescription:
    def test_descriptions(self):
        assert get_exit_code_description(ShutdownExitCode.SUCCESS) == (
            "Servers shut down cleanly"
        )
        assert "forced quit" in get_exit_code_description(ShutdownExitCode.FAILURE)

    def test_unknown_code(self):
        assert get_exit_code_description(42) == "Unknown exit code: 42"
