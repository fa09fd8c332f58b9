"""Domain probes for infrastructure observability.

Domain probes provide a high-level instrumentation API oriented around
domain semantics, keeping infrastructure code clean and testable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class ConnectionProbe(Protocol):
    """Domain probe for database connection lifecycle observability.

    Captures the events of the connection manager: initialization attempts,
    retries, query retries, health checks, pool faults and teardown.
    """

    def initialization_attempt_started(self, attempt: int, max_attempts: int) -> None:
        """Record that an initialization attempt is starting."""
        ...

    def initialization_attempt_failed(
        self, attempt: int, max_attempts: int, error: Exception
    ) -> None:
        """Record that an initialization attempt failed."""
        ...

    def initialization_retry_scheduled(self, attempt: int, delay_seconds: float) -> None:
        """Record the backoff before the next initialization attempt."""
        ...

    def initialization_exhausted(self, attempts: int) -> None:
        """Record that every initialization attempt failed."""
        ...

    def database_initialized(self, server_time: Any) -> None:
        """Record that the pool passed its liveness query."""
        ...

    def query_attempt_failed(
        self, attempt: int, max_attempts: int, error: Exception, sqlstate: str | None
    ) -> None:
        """Record that an attempt of a retried query failed."""
        ...

    def health_check_failed(self, error: Exception, latency_ms: int) -> None:
        """Record that a health check could not reach the database."""
        ...

    def pool_error(self, error: BaseException) -> None:
        """Record an out-of-band fault reported by the pool."""
        ...

    def pool_reinitializing(self) -> None:
        """Record that the pool was dropped and is being rebuilt."""
        ...

    def pool_reinitialization_failed(self, error: BaseException) -> None:
        """Record that rebuilding the pool in the background failed."""
        ...

    def pool_disposal_failed(self, error: Exception) -> None:
        """Record that disposing a discarded pool failed."""
        ...

    def pool_closed(self) -> None:
        """Record that the connection pool was closed."""
        ...

    def with_context(self, context: ObservationContext) -> ConnectionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultConnectionProbe:
    """Default implementation of ConnectionProbe using structlog.

    Supports observation context for including request-scoped metadata
    with all log events.
    """

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

    def with_context(self, context: ObservationContext) -> DefaultConnectionProbe:
        """Create a new probe with observation context bound."""
        return DefaultConnectionProbe(logger=self._logger, context=context)

    def initialization_attempt_started(self, attempt: int, max_attempts: int) -> None:
        self._logger.info(
            "database_connection_attempt_started",
            attempt=attempt,
            max_attempts=max_attempts,
            **self._get_context_kwargs(),
        )

    def initialization_attempt_failed(
        self, attempt: int, max_attempts: int, error: Exception
    ) -> None:
        self._logger.error(
            "database_connection_attempt_failed",
            attempt=attempt,
            max_attempts=max_attempts,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def initialization_retry_scheduled(self, attempt: int, delay_seconds: float) -> None:
        self._logger.info(
            "database_connection_retry_scheduled",
            attempt=attempt,
            delay_seconds=delay_seconds,
            **self._get_context_kwargs(),
        )

    def initialization_exhausted(self, attempts: int) -> None:
        self._logger.error(
            "database_connection_attempts_exhausted",
            attempts=attempts,
            **self._get_context_kwargs(),
        )

    def database_initialized(self, server_time: Any) -> None:
        self._logger.info(
            "database_initialized",
            server_time=str(server_time),
            **self._get_context_kwargs(),
        )

    def query_attempt_failed(
        self, attempt: int, max_attempts: int, error: Exception, sqlstate: str | None
    ) -> None:
        self._logger.warning(
            "database_query_attempt_failed",
            attempt=attempt,
            max_attempts=max_attempts,
            sqlstate=sqlstate,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def health_check_failed(self, error: Exception, latency_ms: int) -> None:
        self._logger.error(
            "database_health_check_failed",
            error=str(error),
            latency_ms=latency_ms,
            **self._get_context_kwargs(),
        )

    def pool_error(self, error: BaseException) -> None:
        self._logger.error(
            "connection_pool_error",
            error=str(error),
            **self._get_context_kwargs(),
        )

    def pool_reinitializing(self) -> None:
        self._logger.warning(
            "connection_pool_reinitializing",
            **self._get_context_kwargs(),
        )

    def pool_reinitialization_failed(self, error: BaseException) -> None:
        self._logger.error(
            "connection_pool_reinitialization_failed",
            error=str(error),
            **self._get_context_kwargs(),
        )

    def pool_disposal_failed(self, error: Exception) -> None:
        self._logger.error(
            "connection_pool_disposal_failed",
            error=str(error),
            **self._get_context_kwargs(),
        )

    def pool_closed(self) -> None:
        """Record that the connection pool was closed."""
        self._logger.info(
            "connection_pool_closed",
            **self._get_context_kwargs(),
        )


class RequestProbe(Protocol):
    """Domain probe for HTTP request lifecycle observability."""

    def request_completed(self, status_code: int, duration_ms: int) -> None:
        """Record that an API request finished."""
        ...

    def request_timed_out(self, timeout_seconds: float) -> None:
        """Record that a request exceeded its time budget."""
        ...

    def request_body_too_large(self, content_length: int, limit: int) -> None:
        """Record that a request was rejected for its body size."""
        ...

    def origin_rejected(self, origin: str) -> None:
        """Record that a cross-origin request came from an unlisted origin."""
        ...

    def database_unavailable(self, error: Exception) -> None:
        """Record that a request failed because the database was unreachable."""
        ...

    def unhandled_error(self, error: Exception) -> None:
        """Record an exception no handler translated."""
        ...

    def with_context(self, context: ObservationContext) -> RequestProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultRequestProbe:
    """Default implementation of RequestProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultRequestProbe:
        """Create a new probe with observation context bound."""
        return DefaultRequestProbe(logger=self._logger, context=context)

    def request_completed(self, status_code: int, duration_ms: int) -> None:
        self._logger.info(
            "api_request_completed",
            status_code=status_code,
            duration_ms=duration_ms,
            **self._get_context_kwargs(),
        )

    def request_timed_out(self, timeout_seconds: float) -> None:
        self._logger.warning(
            "api_request_timed_out",
            timeout_seconds=timeout_seconds,
            **self._get_context_kwargs(),
        )

    def request_body_too_large(self, content_length: int, limit: int) -> None:
        self._logger.warning(
            "api_request_body_too_large",
            content_length=content_length,
            limit=limit,
            **self._get_context_kwargs(),
        )

    def origin_rejected(self, origin: str) -> None:
        self._logger.warning(
            "cors_origin_rejected",
            origin=origin,
            **self._get_context_kwargs(),
        )

    def database_unavailable(self, error: Exception) -> None:
        self._logger.error(
            "database_unavailable",
            error=str(error),
            **self._get_context_kwargs(),
        )

    def unhandled_error(self, error: Exception) -> None:
        self._logger.error(
            "unhandled_error",
            error=str(error),
            exc_info=error,
            **self._get_context_kwargs(),
        )
