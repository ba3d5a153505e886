"""
Server handle: one bound listener with a graceful drain.

Wraps a ``uvicorn.Server`` behind a two-call contract used for both the API
and the admin server:

* ``run()`` binds, serves, and returns ``None`` once the server was stopped
  through ``shutdown()``. It raises ``ServerBindError`` if the address cannot
  be bound and ``ServerStoppedError`` if serving ends on its own.
* ``shutdown(deadline)`` stops accepting connections, waits up to
  ``deadline`` seconds for in-flight requests and then force-closes what is
  left. It never blocks past the deadline.
"""

import asyncio
import contextlib
import logging
import socket
from collections.abc import Generator

import uvicorn
from starlette.types import ASGIApp

from server_config import ListenerTimeouts, join_host_port


class ServerError(Exception):
    """Base class for server handle failures."""


class ServerBindError(ServerError):
    """The listener could not acquire its address."""

    def __init__(self, name: str, address: str, error: OSError):
        super().__init__(f"{name} server failed to bind {address}: {error}")
        self.name = name
        self.address = address
        self.error = error


class ServerStoppedError(ServerError):
    """The server stopped serving without a shutdown request."""


class _UvicornServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the SignalListener"""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


class ServerHandle:
    """A network endpoint serving an ASGI app, with start/stop operations"""

    def __init__(
        self,
        name: str,
        app: ASGIApp,
        host: str,
        port: int,
        timeouts: ListenerTimeouts | None = None,
        logger: logging.Logger | None = None,
    ):
        self.name = name
        self.app = app
        self.host = host
        self.port = port
        self.timeouts = timeouts or ListenerTimeouts()
        self.logger = logger or logging.getLogger(f"{__name__}.{name}")

        config = uvicorn.Config(
            app,
            host=host or "0.0.0.0",
            port=port,
            http="h11",
            lifespan="off",
            log_config=None,
            access_log=False,
            timeout_keep_alive=self.timeouts.idle_timeout,
            h11_max_incomplete_event_size=self.timeouts.header_limit,
        )
        self._server = _UvicornServer(config)
        self._socket: socket.socket | None = None
        self._started = False
        self._shutdown_requested = False
        self._stopped = asyncio.Event()

    @property
    def address(self) -> str:
        return join_host_port(self.host, str(self.port))

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, useful when configured with port 0"""
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    @property
    def is_serving(self) -> bool:
        return self._started and not self._stopped.is_set()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        return socket.create_server(
            (self.host, self.port), family=family, backlog=self._server.config.backlog
        )

    async def run(self) -> None:
        """Serve until shutdown is requested.

        Raises:
            ServerBindError: the address could not be bound
            ServerStoppedError: serving ended without a shutdown request
        """
        if self._shutdown_requested:
            self.logger.info(f"{self.name} server shut down before it started")
            return

        try:
            sock = self._bind()
        except OSError as e:
            raise ServerBindError(self.name, self.address, e) from e

        self._socket = sock
        self._started = True
        self.logger.debug(f"{self.name} server bound to port {self.bound_port}")
        try:
            await self._server.serve(sockets=[sock])
        finally:
            # serve() skips its own shutdown if stopped during startup
            for server in self._server.servers:
                server.close()
            sock.close()
            self._stopped.set()

        if not self._shutdown_requested:
            raise ServerStoppedError(
                f"{self.name} server stopped without a shutdown request"
            )

    async def shutdown(self, deadline: float) -> bool:
        """Drain the server within ``deadline`` seconds.

        Returns:
            True if ``run()`` finished within the deadline, False if the
            remaining connections had to be force-closed
        """
        if self._shutdown_requested:
            self.logger.debug(f"{self.name} server shutdown already requested")
        self._shutdown_requested = True

        # uvicorn cancels outstanding request tasks once this elapses
        self._server.config.timeout_graceful_shutdown = deadline
        self._server.should_exit = True

        if not self._started:
            return True

        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=deadline)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"{self.name} server did not drain within {deadline}s, "
                "closing remaining connections"
            )
            self._force_close()
            return False

        self.logger.debug(f"{self.name} server drained")
        return True

    def _force_close(self) -> None:
        """Drop every open connection and cancel its request task."""
        self._server.force_exit = True
        state = self._server.server_state
        for connection in list(state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None:
                transport.close()
        for task in list(state.tasks):
            task.cancel()
