"""Cross-origin policy shared by the server and serverless entrypoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from infrastructure.settings import AppSettings

DEV_PORTS = (3000, 5000, 5173)
DEV_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "Accept"]
PREFLIGHT_MAX_AGE_SECONDS = 3600


def build_allowed_origins(settings: AppSettings) -> list[str]:
    """List the origins always accepted, plus deployment origins in production."""
    origins = [f"http://{host}:{port}" for host in DEV_HOSTS for port in DEV_PORTS]

    if settings.is_production:
        if settings.vercel_url:
            origins.append(f"https://{settings.vercel_url}")
        if settings.frontend_url:
            origins.append(settings.frontend_url)

    return origins


@dataclass(frozen=True)
class CorsPolicy:
    """Which browser origins may call the API.

    Outside production any origin is accepted to keep local tooling simple.
    Requests without an Origin header (curl, mobile apps) are never blocked.
    """

    origins: tuple[str, ...]
    allow_any_origin: bool

    @classmethod
    def from_settings(cls, settings: AppSettings) -> CorsPolicy:
        return cls(
            origins=tuple(build_allowed_origins(settings)),
            allow_any_origin=not settings.is_production,
        )

    def is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return True
        return self.allow_any_origin or origin in self.origins

    def middleware_options(self) -> dict[str, Any]:
        """Keyword arguments for Starlette's CORSMiddleware."""
        options: dict[str, Any] = {
            "allow_origins": list(self.origins),
            "allow_credentials": True,
            "allow_methods": ALLOWED_METHODS,
            "allow_headers": ALLOWED_HEADERS,
            "max_age": PREFLIGHT_MAX_AGE_SECONDS,
        }
        if self.allow_any_origin:
            # Echoes the caller's origin, which "*" cannot do with credentials
            options["allow_origin_regex"] = ".*"
        return options
