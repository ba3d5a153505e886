"""
ASGI middlewares shared by the API and admin servers.

All middlewares are plain ASGI callables so that they can be registered with
``FastAPI.add_middleware`` and stacked in a fixed order with
``apply_middlewares``.
"""

import asyncio
import hmac
import logging
import time
from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI
from starlette.datastructures import Headers
from starlette.responses import PlainTextResponse
from starlette.routing import Match
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from metrics import HTTPMetrics

logger = logging.getLogger(__name__)

# Label for requests that matched no route, so unknown paths share one series
UNMATCHED_PATH_LABEL = "unmatched"

MiddlewareSpec = tuple[type, dict[str, Any]]


def apply_middlewares(app: FastAPI, chain: Sequence[MiddlewareSpec]) -> FastAPI:
    """Install ``chain`` on ``app`` so that the first entry is the outermost.

    Starlette wraps the most recently added middleware around the others, so
    the chain is added in reverse.
    """
    for middleware_class, options in reversed(chain):
        app.add_middleware(middleware_class, **options)
    return app


def request_head_size(scope: Scope) -> int:
    """Bytes taken by the request line and headers as sent on the wire."""
    target = scope.get("raw_path") or scope["path"].encode()
    size = len(scope["method"]) + len(target) + len("  HTTP/\r\n")
    size += len(scope.get("http_version", "1.1"))
    if scope.get("query_string"):
        size += 1 + len(scope["query_string"])
    for name, value in scope["headers"]:
        size += len(name) + len(value) + len(": \r\n")
    return size + len("\r\n")


class HeaderSizeLimitMiddleware:
    """Rejects requests whose head exceeds ``max_bytes`` with 431."""

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        size = request_head_size(scope)
        if size > self.max_bytes:
            logger.warning(
                f"{scope['method']} {scope['path']}: request head of {size} bytes "
                f"exceeds {self.max_bytes}"
            )
            response = PlainTextResponse(
                "431 Request Header Fields Too Large", status_code=431
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


class RequestLoggingMiddleware:
    """Logs one line per request with status and duration."""

    def __init__(self, app: ASGIApp, server_name: str = "server"):
        self.app = app
        self.server_name = server_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status_code = 500
        start = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            client = scope.get("client")
            logger.info(
                f"{self.server_name}: {scope['method']} {scope['path']} "
                f"{status_code} {duration_ms:.2f}ms "
                f"client={client[0] if client else 'unknown'}"
            )


def route_label(scope: Scope) -> str:
    """Path template of the route serving ``scope``, for metric labels.

    Requests that match no route share UNMATCHED_PATH_LABEL.
    """
    app = scope.get("app")
    for route in getattr(app, "routes", ()):
        match, _ = route.matches(scope)
        if match is not Match.NONE:
            return getattr(route, "path", scope["path"])
    return UNMATCHED_PATH_LABEL


class MetricsMiddleware:
    """Records request count by path/status and request latency."""

    def __init__(self, app: ASGIApp, metrics: HTTPMetrics):
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status_code = 200
        start = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            status_code = 500
            raise
        finally:
            self.metrics.observe(
                route_label(scope), status_code, time.perf_counter() - start
            )


class APIKeyMiddleware:
    """Rejects requests whose Authorization header does not match the API key.

    An empty key disables the check.
    """

    def __init__(self, app: ASGIApp, api_key: str = ""):
        self.app = app
        self.api_key = api_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.api_key:
            await self.app(scope, receive, send)
            return

        logger.debug("Auth middleware: compare Authorization header with API key")
        provided = Headers(scope=scope).get("authorization", "")
        if not hmac.compare_digest(provided.encode(), self.api_key.encode()):
            response = PlainTextResponse("Not Authenticated", status_code=401)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


class RequestReadTimeout(Exception):
    """Raised when the client does not deliver the request in time."""


class RequestTimeoutMiddleware:
    """Bounds how long a request may take to read and to answer.

    The first ``receive()`` is bounded by ``read_header_timeout``, later ones
    by ``read_timeout``; the whole handler is bounded by ``write_timeout``.
    A timeout of 0 disables that bound.
    """

    def __init__(
        self,
        app: ASGIApp,
        read_timeout: float = 0.0,
        read_header_timeout: float = 0.0,
        write_timeout: float = 0.0,
    ):
        self.app = app
        self.read_timeout = read_timeout
        self.read_header_timeout = read_header_timeout
        self.write_timeout = write_timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False
        first_receive = True

        async def receive_wrapper() -> Message:
            nonlocal first_receive
            timeout = self.read_header_timeout if first_receive else self.read_timeout
            first_receive = False
            if timeout <= 0:
                return await receive()
            try:
                return await asyncio.wait_for(receive(), timeout)
            except asyncio.TimeoutError:
                raise RequestReadTimeout(f"request not received within {timeout}s") from None

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        handler = self.app(scope, receive_wrapper, send_wrapper)
        try:
            if self.write_timeout > 0:
                await asyncio.wait_for(handler, self.write_timeout)
            else:
                await handler
        except RequestReadTimeout as e:
            logger.warning(f"{scope['method']} {scope['path']}: {e}")
            if not response_started:
                await PlainTextResponse("request timed out", status_code=408)(
                    scope, receive, send
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"{scope['method']} {scope['path']}: response not written "
                f"within {self.write_timeout}s"
            )
            if not response_started:
                await PlainTextResponse("request timed out", status_code=503)(
                    scope, receive, send
                )
