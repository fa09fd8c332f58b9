"""Domain probe for application startup and lifecycle events.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events during application initialization and shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class StartupProbe(Protocol):
    """Domain probe for application startup operations."""

    def application_starting(self, environment: str, version: str) -> None:
        """Record that the application is starting."""
        ...

    def cors_configured(self, origins: list[str], allow_any_origin: bool) -> None:
        """Record the effective CORS policy."""
        ...

    def database_warmup_failed(self, error: str) -> None:
        """Record that the startup connection attempt failed.

        The application keeps serving; requests initialize lazily.
        """
        ...

    def application_stopped(self) -> None:
        """Record that the application finished shutting down."""
        ...

    def with_context(self, context: ObservationContext) -> StartupProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultStartupProbe:
    """Default implementation of StartupProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultStartupProbe:
        """Create a new probe with observation context bound."""
        return DefaultStartupProbe(logger=self._logger, context=context)

    def application_starting(self, environment: str, version: str) -> None:
        """Record that the application is starting."""
        self._logger.info(
            "application_starting",
            environment=environment,
            version=version,
            **self._get_context_kwargs(),
        )

    def cors_configured(self, origins: list[str], allow_any_origin: bool) -> None:
        """Record the effective CORS policy."""
        self._logger.info(
            "cors_configured",
            origins=origins,
            allow_any_origin=allow_any_origin,
            **self._get_context_kwargs(),
        )

    def database_warmup_failed(self, error: str) -> None:
        """Record that the startup connection attempt failed."""
        self._logger.warning(
            "database_warmup_failed",
            error=error,
            **self._get_context_kwargs(),
        )

    def application_stopped(self) -> None:
        """Record that the application finished shutting down."""
        self._logger.info(
            "application_stopped",
            **self._get_context_kwargs(),
        )
