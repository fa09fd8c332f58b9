"""HTTP request lifecycle plumbing shared by every entrypoint."""

from infrastructure.http.cors import CorsPolicy, build_allowed_origins
from infrastructure.http.handlers import register_exception_handlers
from infrastructure.http.middleware import (
    BodySizeLimitMiddleware,
    RequestContextMiddleware,
    RequestTimeoutMiddleware,
)

__all__ = [
    "BodySizeLimitMiddleware",
    "CorsPolicy",
    "RequestContextMiddleware",
    "RequestTimeoutMiddleware",
    "build_allowed_origins",
    "register_exception_handlers",
]
