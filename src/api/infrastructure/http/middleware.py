"""Request lifecycle middleware: request ids, size limits, timeouts, logging."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from infrastructure.observability import (
    DefaultRequestProbe,
    ObservationContext,
    RequestProbe,
)

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from infrastructure.http.cors import CorsPolicy
    from infrastructure.settings import AppSettings

REQUEST_ID_HEADER = "X-Request-ID"
API_PREFIX = "/api"
LONG_RUNNING_PATH_MARKERS = ("/upload", "/api/documents")
INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def request_timeout_for(path: str, settings: AppSettings) -> float:
    """Upload and document routes get the long budget, everything else the default."""
    if any(marker in path for marker in LONG_RUNNING_PATH_MARKERS):
        return settings.upload_timeout_seconds
    return settings.request_timeout_seconds


def internal_error_response() -> JSONResponse:
    """The generic 500 body; details stay in the logs."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": INTERNAL_ERROR_MESSAGE},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag the request with an id and log completed ``/api`` requests.

    The request-scoped probe is stored on ``request.state.probe`` so that
    exception handlers log with the same request id. Exceptions no handler
    translated become a 500 here, so the response still carries the request
    id and passes back through CORS.
    """

    def __init__(
        self,
        app: ASGIApp,
        cors_policy: CorsPolicy,
        probe: RequestProbe | None = None,
    ):
        super().__init__(app)
        self._cors_policy = cors_policy
        self._probe = probe or DefaultRequestProbe()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.monotonic()
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        path = request.url.path

        probe = self._probe.with_context(
            ObservationContext(request_id=request_id, method=request.method, path=path)
        )
        request.state.request_id = request_id
        request.state.probe = probe

        origin = request.headers.get("origin")
        if not self._cors_policy.is_allowed(origin):
            probe.origin_rejected(origin)

        try:
            response = await call_next(request)
        except Exception as e:
            probe.unhandled_error(e)
            response = internal_error_response()

        response.headers[REQUEST_ID_HEADER] = request_id
        if path.startswith(API_PREFIX):
            duration_ms = round((time.monotonic() - started) * 1000)
            probe.request_completed(response.status_code, duration_ms)
        return response


class BodyTooLargeError(Exception):
    """Raised from ``receive`` once a request body passes the limit."""

    def __init__(self, received: int, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes")
        self.received = received
        self.limit = limit


class BodySizeLimitMiddleware:
    """Reject requests whose body exceeds the configured limit.

    A declared ``Content-Length`` over the limit is refused before the
    application runs. Bodies without one (chunked uploads) are counted as
    they are read; once the count passes the limit, whatever the application
    was about to send is replaced by the 413.
    """

    def __init__(self, app: ASGIApp, settings: AppSettings):
        self.app = app
        self._limit = settings.max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self._limit:
            await self._reject(scope, receive, send, int(declared))
            return

        received = 0
        exceeded = False
        response_started = False

        async def counting_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self._limit:
                    exceeded = True
                    raise BodyTooLargeError(received, self._limit)
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            if exceeded and not response_started:
                return
            response_started = response_started or (
                message["type"] == "http.response.start"
            )
            await send(message)

        try:
            await self.app(scope, counting_receive, guarded_send)
        except Exception:
            if not exceeded or response_started:
                raise

        if exceeded and not response_started:
            await self._reject(scope, receive, send, received)

    async def _reject(
        self, scope: Scope, receive: Receive, send: Send, size: int
    ) -> None:
        probe_for_request(Request(scope)).request_body_too_large(size, self._limit)
        response = JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"message": "Request body too large"},
        )
        await response(scope, receive, send)


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Bound how long a request may run; long budget for uploads."""

    def __init__(self, app: ASGIApp, settings: AppSettings):
        super().__init__(app)
        self._settings = settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        timeout = request_timeout_for(request.url.path, self._settings)
        try:
            async with asyncio.timeout(timeout) as budget:
                return await call_next(request)
        except TimeoutError:
            # Handler TimeoutErrors (e.g. driver connect timeouts) propagate
            if not budget.expired():
                raise
            probe_for_request(request).request_timed_out(timeout)
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={"message": "Request timed out"},
            )


def probe_for_request(request: Request) -> RequestProbe:
    """The probe bound to this request by RequestContextMiddleware, if any."""
    probe = getattr(request.state, "probe", None)
    return probe if probe is not None else DefaultRequestProbe()
