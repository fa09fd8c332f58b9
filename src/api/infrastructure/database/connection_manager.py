"""Lazy, retrying, single-flight database connection manager.

Every consumer of the database resolves the pool and session factory
through a ``ConnectionManager``. The first caller (or the first wave of
concurrent callers) triggers initialization; everybody else reuses the
stored state. A pool dropped by the server is rebuilt in the background
when running in production.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import text

from infrastructure.database.engines import create_client, create_pool
from infrastructure.database.errors import extract_sqlstate, is_admin_shutdown
from infrastructure.database.exceptions import DatabaseInitializationError
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import (
        AsyncConnection,
        AsyncEngine,
        AsyncSession,
        async_sessionmaker,
    )

    from infrastructure.settings import DatabaseSettings

    PoolFactory = Callable[
        [DatabaseSettings, Callable[[BaseException], None]], AsyncEngine
    ]
    ClientFactory = Callable[[AsyncEngine], async_sessionmaker[AsyncSession]]

T = TypeVar("T")

DEFAULT_QUERY_ATTEMPTS = 3
LIVENESS_QUERY = "SELECT NOW()"
HEALTH_QUERY = "SELECT 1"


@dataclass(frozen=True)
class ConnectionState:
    """A live pool and the session factory bound to it."""

    pool: AsyncEngine
    client: async_sessionmaker[AsyncSession]


@dataclass(frozen=True)
class HealthResult:
    """Point-in-time database health snapshot."""

    healthy: bool
    latency_ms: int
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Serialize for the health endpoint."""
        result: dict[str, Any] = {"healthy": self.healthy, "latency": self.latency_ms}
        if self.error is not None:
            result["error"] = self.error
        return result


class ConnectionManager:
    """Owns the lifecycle of the process's database pool.

    Attributes:
        _settings: Database configuration settings
        _production: Whether pool faults trigger automatic recovery
        _state: The current pool/client pair, or None
        _initializing: The in-flight initialization shared by all callers
        _recovery_tasks: Detached background recoveries still running
        _probe: Observability probe for monitoring
    """

    def __init__(
        self,
        settings: DatabaseSettings,
        *,
        production: bool = False,
        pool_factory: PoolFactory = create_pool,
        client_factory: ClientFactory = create_client,
        probe: ConnectionProbe | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the manager without touching the network.

        Args:
            settings: Database connection settings
            production: Enable automatic recovery from pool faults
            pool_factory: Builds a pool; receives the pool-fault callback
            client_factory: Builds the session factory for a pool
            probe: Optional observability probe
            sleep: Backoff timer
        """
        self._settings = settings
        self._production = production
        self._pool_factory = pool_factory
        self._client_factory = client_factory
        self._probe = probe or DefaultConnectionProbe()
        self._sleep = sleep
        self._state: ConnectionState | None = None
        self._initializing: asyncio.Task[ConnectionState] | None = None
        self._recovery_tasks: set[asyncio.Task[None]] = set()
        self._failed_attempts = 0

    @property
    def state(self) -> ConnectionState | None:
        return self._state

    @property
    def failed_attempts(self) -> int:
        """Failed connection attempts since the last successful initialization."""
        return self._failed_attempts

    async def initialize(self) -> ConnectionState:
        """Return the live pool/client pair, creating it on first use.

        Concurrent callers share one in-flight initialization, so only one
        pool is ever constructed for a cold process.

        Raises:
            DatabaseInitializationError: If every connection attempt failed.
        """
        if self._state is not None:
            return self._state

        if self._initializing is None:
            task = asyncio.create_task(self._connect_with_retry())
            task.add_done_callback(self._initialization_finished)
            self._initializing = task

        # shield: a cancelled caller must not cancel the shared attempt
        return await asyncio.shield(self._initializing)

    def _initialization_finished(self, task: asyncio.Task[ConnectionState]) -> None:
        if self._initializing is task:
            self._initializing = None

    async def _connect_with_retry(self) -> ConnectionState:
        max_attempts = self._settings.connect_max_attempts

        for attempt in range(1, max_attempts + 1):
            self._probe.initialization_attempt_started(attempt, max_attempts)
            pool: AsyncEngine | None = None
            try:
                pool = self._pool_factory(self._settings, self.handle_pool_error)
                async with pool.connect() as connection:
                    result = await connection.execute(text(LIVENESS_QUERY))
                    server_time = result.scalar()
                client = self._client_factory(pool)
            except asyncio.CancelledError:
                if pool is not None:
                    await self._dispose(pool)
                raise
            except Exception as e:
                self._failed_attempts += 1
                self._probe.initialization_attempt_failed(attempt, max_attempts, e)
                if pool is not None:
                    await self._dispose(pool)

                if attempt == max_attempts:
                    self._probe.initialization_exhausted(max_attempts)
                    raise DatabaseInitializationError(
                        f"Failed to initialize database after {max_attempts} "
                        f"attempts: {e}",
                        attempts=max_attempts,
                    ) from e

                delay = self._settings.retry_delay_seconds * attempt
                self._probe.initialization_retry_scheduled(attempt, delay)
                await self._sleep(delay)
            else:
                self._state = ConnectionState(pool=pool, client=client)
                self._failed_attempts = 0
                self._probe.database_initialized(server_time)
                return self._state

        # max_attempts is validated to be >= 1
        raise AssertionError("unreachable")

    async def get_database(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory bound to the live pool."""
        state = await self.initialize()
        return state.client

    async def get_pool(self) -> AsyncEngine:
        """Get the live pool."""
        state = await self.initialize()
        return state.pool

    @asynccontextmanager
    async def acquire_connection(self) -> AsyncIterator[AsyncConnection]:
        """Check out the pool's connection; it is returned on every exit path."""
        pool = await self.get_pool()
        async with pool.connect() as connection:
            yield connection

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session from the live client.

        The session does NOT auto-commit; use ``async with session.begin()``.
        """
        client = await self.get_database()
        async with client() as session:
            yield session

    async def query_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = DEFAULT_QUERY_ATTEMPTS,
    ) -> T:
        """Run ``operation``, retrying only when the server shut the connection down.

        Any error other than SQLSTATE 57P01 (admin shutdown) is re-raised
        on the spot: retrying a constraint violation cannot succeed and may
        repeat side effects.

        Args:
            operation: Zero-argument coroutine function doing the work
            max_attempts: Total attempts including the first

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(1, max_attempts + 1):
            try:
                await self.get_database()
                return await operation()
            except Exception as e:
                self._probe.query_attempt_failed(
                    attempt, max_attempts, e, extract_sqlstate(e)
                )
                if attempt < max_attempts and is_admin_shutdown(e):
                    await self._sleep(self._settings.retry_delay_seconds * attempt)
                    continue
                raise

        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    async def check_health(self) -> HealthResult:
        """Probe the database; never raises.

        Latency covers everything from the call, including connection
        checkout and, on a cold process, initialization.
        """
        started = time.monotonic()
        try:
            async with self.acquire_connection() as connection:
                await connection.execute(text(HEALTH_QUERY))
        except Exception as e:
            latency_ms = _elapsed_ms(started)
            self._probe.health_check_failed(e, latency_ms)
            return HealthResult(healthy=False, latency_ms=latency_ms, error=str(e))

        return HealthResult(healthy=True, latency_ms=_elapsed_ms(started))

    def handle_pool_error(self, error: BaseException) -> None:
        """React to a fault the pool reported outside any caller's control.

        In production the state is dropped and rebuilt in the background;
        elsewhere the fault is only logged so misconfiguration stays visible.
        """
        self._probe.pool_error(error)
        if not self._production:
            return

        dropped, self._state = self._state, None
        self._probe.pool_reinitializing()
        self._spawn(self._recover(dropped))

    async def _recover(self, dropped: ConnectionState | None) -> None:
        if dropped is not None:
            await self._dispose(dropped.pool)
        await self.initialize()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._recovery_tasks.add(task)
        task.add_done_callback(self._recovery_finished)

    def _recovery_finished(self, task: asyncio.Task[None]) -> None:
        self._recovery_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._probe.pool_reinitialization_failed(error)

    async def _dispose(self, pool: AsyncEngine) -> None:
        try:
            await pool.dispose()
        except Exception as e:
            self._probe.pool_disposal_failed(e)

    async def shutdown(self) -> None:
        """Close the pool and forget it. Safe to call repeatedly.

        In-flight initialization and recovery are cancelled and awaited
        first, so neither can store a new pool once shutdown returns.
        """
        pending = list(self._recovery_tasks)
        if self._initializing is not None:
            pending.append(self._initializing)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        state, self._state = self._state, None
        if state is None:
            return

        try:
            await state.pool.dispose()
        except Exception as e:
            self._probe.pool_disposal_failed(e)
            return
        self._probe.pool_closed()


def _elapsed_ms(started: float) -> int:
    return max(0, round((time.monotonic() - started) * 1000))
