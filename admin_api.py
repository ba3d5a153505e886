"""
Admin application: health check and metrics export.

Served on its own port so API consumers cannot reach it; no authentication.
"""

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from metrics import HTTPMetrics
from middlewares import (
    HeaderSizeLimitMiddleware,
    RequestLoggingMiddleware,
    RequestTimeoutMiddleware,
    apply_middlewares,
)
from server_config import ListenerTimeouts


def create_admin_app(
    metrics: HTTPMetrics, timeouts: ListenerTimeouts | None = None
) -> FastAPI:
    """Create the admin FastAPI application"""
    timeouts = timeouts or ListenerTimeouts()

    app = FastAPI(
        title="FizzBuzz Admin",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check() -> str:
        return "OK"

    @app.get("/metrics")
    async def export_metrics(request: Request) -> Response:
        body, content_type = metrics.render(request.headers.get("accept"))
        return Response(content=body, media_type=content_type)

    return apply_middlewares(
        app,
        [
            (HeaderSizeLimitMiddleware, {"max_bytes": timeouts.header_limit}),
            (RequestLoggingMiddleware, {"server_name": "admin"}),
            (
                RequestTimeoutMiddleware,
                {
                    "read_timeout": timeouts.read_timeout,
                    "read_header_timeout": timeouts.read_header_timeout,
                    "write_timeout": timeouts.write_timeout,
                },
            ),
        ],
    )
