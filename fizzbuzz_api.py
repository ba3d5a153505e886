#!/usr/bin/env python3

"""
FizzBuzz public API application.

Exposes ``GET /fizzbuzz`` and is wrapped, outermost first, by a request
head size limit, request logging, metrics collection and API-key
authentication, so that requests rejected for a bad key are still logged and
counted.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import QueryParams

from fizzbuzz_service import (
    ComputeFizzBuzzRangeParams,
    FizzBuzzService,
    FizzBuzzValidationError,
)
from metrics import HTTPMetrics
from middlewares import (
    APIKeyMiddleware,
    HeaderSizeLimitMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    RequestTimeoutMiddleware,
    apply_middlewares,
)
from server_config import ListenerTimeouts

logger = logging.getLogger(__name__)

ERR_INVALID_ARGUMENT = "InvalidArgument"
ERR_INTERNAL_ERROR = "InternalError"

API_VERSION = "1.0.0"


class QueryParameterError(ValueError):
    """Raised when a query parameter cannot be decoded."""


def error_response(error_code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        {"error_code": error_code, "message": message}, status_code=status_code
    )


def _int_param(query: QueryParams, name: str) -> int:
    try:
        return int(query.get(name, ""))
    except ValueError:
        raise QueryParameterError(f"query parameter {name} must be an integer") from None


def parse_params_from_query(query: QueryParams) -> ComputeFizzBuzzRangeParams:
    """Decode FizzBuzz parameters from the query string.

    Only the integer decoding happens here; range checks belong to the service.
    """
    int1 = _int_param(query, "int1")
    int2 = _int_param(query, "int2")
    limit = _int_param(query, "limit")

    return ComputeFizzBuzzRangeParams(
        string1=query.get("string1", ""),
        string2=query.get("string2", ""),
        int1=int1,
        int2=int2,
        limit=limit,
    )


def create_api_app(
    service: FizzBuzzService,
    metrics: HTTPMetrics,
    api_key: str = "",
    timeouts: ListenerTimeouts | None = None,
) -> FastAPI:
    """Create the public FastAPI application"""
    timeouts = timeouts or ListenerTimeouts()

    app = FastAPI(
        title="FizzBuzz API",
        description="Parameterized FizzBuzz over a range of integers",
        version=API_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/fizzbuzz")
    async def fizzbuzz(request: Request) -> Any:
        """Return the FizzBuzz tokens for 1..limit"""
        try:
            params = parse_params_from_query(request.query_params)
        except QueryParameterError as e:
            return error_response(ERR_INVALID_ARGUMENT, str(e), 400)

        try:
            result = service.compute_fizzbuzz_range(params)
        except FizzBuzzValidationError as e:
            return error_response(ERR_INVALID_ARGUMENT, str(e), 400)
        except Exception as e:
            logger.error(f"api: fizzbuzz handler failed: {e} (path={request.url.path})")
            return error_response(ERR_INTERNAL_ERROR, "something went wrong", 500)

        return {"data": result.data}

    return apply_middlewares(
        app,
        [
            (HeaderSizeLimitMiddleware, {"max_bytes": timeouts.header_limit}),
            (RequestLoggingMiddleware, {"server_name": "api"}),
            (MetricsMiddleware, {"metrics": metrics}),
            (APIKeyMiddleware, {"api_key": api_key}),
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
