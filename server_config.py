"""
Server configuration read from the environment.

Every value is optional except the two ports. Durations are written the way
operators already write them for Go services ("3s", "250ms", "1m30s"); any
value that does not parse falls back to its default instead of failing.
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from constants import (
    DEFAULT_DURATION,
    DEFAULT_MAX_HEADER_BYTES,
    DEFAULT_SHUTDOWN_TIMEOUT,
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
    HEADER_BYTES_SLACK,
)

logger = logging.getLogger(__name__)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class InvalidAddressError(ValueError):
    """Raised when a host/port pair cannot be turned into a bind address."""


def parse_duration(value: str | None, fallback: float) -> float:
    """Parse a Go-style duration string into seconds.

    Returns ``fallback`` for missing, malformed or negative values.
    """
    if value is None:
        return fallback
    text = value.strip()
    if text == "0":
        return 0.0
    if not text:
        return fallback

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            return fallback
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


def parse_int(value: str | None, fallback: int) -> int:
    """Parse a positive integer, returning ``fallback`` otherwise."""
    if value is None:
        return fallback
    try:
        parsed = int(value.strip())
    except ValueError:
        return fallback
    if parsed <= 0:
        return fallback
    return parsed


def join_host_port(host: str, port: str) -> str:
    """Combine host and port into ``host:port``, bracketing IPv6 hosts."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def read_address_from_env(
    environ: Mapping[str, str], host_var: str, port_var: str
) -> tuple[str, int]:
    """Read a bind address from two environment variables.

    Raises:
        InvalidAddressError: the port is missing, not a number or out of range
    """
    host = environ.get(host_var, "")
    port = environ.get(port_var, "")

    addr = join_host_port(host, port)
    if addr == ":":
        raise InvalidAddressError(f"invalid addr ':' ({host_var}/{port_var} unset)")

    try:
        port_number = int(port)
    except ValueError:
        raise InvalidAddressError(
            f"invalid addr '{addr}': {port_var} must be a port number"
        ) from None
    if not 0 <= port_number <= 65535:
        raise InvalidAddressError(
            f"invalid addr '{addr}': {port_var} must be between 0 and 65535"
        )

    return host, port_number


def load_environment(env_file: Path | None = None) -> bool:
    """Load a .env file into ``os.environ`` without overriding set variables."""
    if env_file is not None:
        if not env_file.exists():
            logger.warning(f"Env file {env_file} not found, using process environment")
            return False
        logger.info(f"Loading environment from {env_file}")
        return load_dotenv(env_file, override=False)

    if os.path.exists(".env"):
        logger.info("Loading .env from current directory")
        return load_dotenv(".env", override=False)
    return False


@dataclass(frozen=True)
class ListenerTimeouts:
    """Per-connection limits applied to one server handle."""

    read_timeout: float = DEFAULT_DURATION
    read_header_timeout: float = DEFAULT_DURATION
    write_timeout: float = DEFAULT_DURATION
    idle_timeout: float = DEFAULT_DURATION
    max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES

    @property
    def header_limit(self) -> int:
        """Largest request head accepted, in bytes"""
        return self.max_header_bytes + HEADER_BYTES_SLACK


@dataclass(frozen=True)
class ServerConfig:
    """Everything the entrypoint needs to build both servers."""

    host: str
    api_port: int
    admin_port: int
    timeouts: ListenerTimeouts
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    api_key: str = ""

    @property
    def api_address(self) -> str:
        return join_host_port(self.host, str(self.api_port))

    @property
    def admin_address(self) -> str:
        return join_host_port(self.host, str(self.admin_port))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Build the configuration from environment variables.

        Raises:
            InvalidAddressError: when either port is missing or invalid
        """
        if environ is None:
            environ = os.environ

        host, api_port = read_address_from_env(environ, ENV_SERVER_HOST, ENV_SERVER_PORT)
        _, admin_port = read_address_from_env(environ, ENV_SERVER_HOST, ENV_ADMIN_PORT)

        timeouts = ListenerTimeouts(
            read_timeout=parse_duration(environ.get(ENV_READ_TIMEOUT), DEFAULT_DURATION),
            read_header_timeout=parse_duration(
                environ.get(ENV_READ_HEADER_TIMEOUT), DEFAULT_DURATION
            ),
            write_timeout=parse_duration(environ.get(ENV_WRITE_TIMEOUT), DEFAULT_DURATION),
            idle_timeout=parse_duration(environ.get(ENV_IDLE_TIMEOUT), DEFAULT_DURATION),
            max_header_bytes=parse_int(
                environ.get(ENV_MAX_HEADER_BYTES), DEFAULT_MAX_HEADER_BYTES
            ),
        )

        return cls(
            host=host,
            api_port=api_port,
            admin_port=admin_port,
            timeouts=timeouts,
            shutdown_timeout=parse_duration(
                environ.get(ENV_SHUTDOWN_TIMEOUT), DEFAULT_SHUTDOWN_TIMEOUT
            ),
            api_key=environ.get(ENV_API_KEY, ""),
        )
