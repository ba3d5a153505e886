"""
Pytest configuration and shared fixtures for the FizzBuzz server tests.
"""

import asyncio
import logging
import os
from unittest.mock import Mock, patch

import pytest

from constants import (
    ENV_ADMIN_PORT,
    ENV_API_KEY,
    ENV_IDLE_TIMEOUT,
    ENV_MAX_HEADER_BYTES,
    ENV_READ_HEADER_TIMEOUT,
    ENV_READ_TIMEOUT,
    ENV_SERVER_HOST,
    ENV_SERVER_PORT,
    ENV_SHUTDOWN_TIMEOUT,
    ENV_WRITE_TIMEOUT,
)
from lifecycle_signal import LifecycleSignal
from metrics import HTTPMetrics
from server_config import ListenerTimeouts, ServerConfig

SERVER_ENV_VARS = (
    ENV_SERVER_HOST,
    ENV_SERVER_PORT,
    ENV_ADMIN_PORT,
    ENV_READ_TIMEOUT,
    ENV_READ_HEADER_TIMEOUT,
    ENV_WRITE_TIMEOUT,
    ENV_IDLE_TIMEOUT,
    ENV_SHUTDOWN_TIMEOUT,
    ENV_MAX_HEADER_BYTES,
    ENV_API_KEY,
)


@pytest.fixture
def test_logger():
    """Create a real logger for testing."""
    logger = logging.getLogger(f"test_logger_{id(object())}")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def mock_logger():
    """Create a mock logger."""
    return Mock(spec=logging.Logger)


@pytest.fixture
def clean_env():
    """Run the test with none of the server variables set."""
    env = {k: v for k, v in os.environ.items() if k not in SERVER_ENV_VARS}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def metrics():
    return HTTPMetrics()


@pytest.fixture
def lifecycle(test_logger):
    return LifecycleSignal(test_logger)


@pytest.fixture
def fast_timeouts():
    """Short per-connection timeouts for live-server tests."""
    return ListenerTimeouts(
        read_timeout=2.0,
        read_header_timeout=2.0,
        write_timeout=10.0,
        idle_timeout=1.0,
        max_header_bytes=8192,
    )


@pytest.fixture
def local_config(fast_timeouts):
    """Config binding both servers to ephemeral ports on localhost."""
    return ServerConfig(
        host="127.0.0.1",
        api_port=0,
        admin_port=0,
        timeouts=fast_timeouts,
        shutdown_timeout=1.0,
        api_key="",
    )


async def wait_until_bound(handle, timeout: float = 5.0) -> int:
    """Wait for a ServerHandle to bind and return its port."""
    loop = asyncio.get_running_loop()
    end_time = loop.time() + timeout
    while handle.bound_port is None:
        if loop.time() > end_time:
            raise TimeoutError(f"{handle.name} server did not bind within {timeout}s")
        await asyncio.sleep(0.01)
    return handle.bound_port
