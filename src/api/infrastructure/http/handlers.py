"""Exception handlers translating infrastructure failures into HTTP responses.

A database that cannot be reached is expected to come back (cold starts,
idle connections dropped by the provider), so it surfaces as 503 rather
than a generic 500.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from infrastructure.database.exceptions import DatabaseConnectionError
from infrastructure.http.middleware import internal_error_response, probe_for_request

DATABASE_UNAVAILABLE_MESSAGE = "Database temporarily unavailable"


def _service_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"message": DATABASE_UNAVAILABLE_MESSAGE},
        headers={"Retry-After": "1"},
    )


async def database_connection_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Return 503 when the database could not be reached."""
    probe_for_request(request).database_unavailable(exc)
    return _service_unavailable()


async def dbapi_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 503 for dropped connections, 500 for anything else the driver raised."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        probe_for_request(request).database_unavailable(exc)
        return _service_unavailable()

    probe_for_request(request).unhandled_error(exc)
    return internal_error_response()


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all: log with traceback and return a safe 500."""
    probe_for_request(request).unhandled_error(exc)
    return internal_error_response()


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the infrastructure exception handlers to ``app``."""
    app.add_exception_handler(
        DatabaseConnectionError, database_connection_error_handler
    )
    app.add_exception_handler(DBAPIError, dbapi_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
