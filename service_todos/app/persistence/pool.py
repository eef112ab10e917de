"""
Connection pool with per-connection IAM credentials.

Unlike a static-password pool, every physical connection is authenticated
with its own token obtained from a CredentialProvider right before the
handshake. Tokens are never cached or shared between connections.
"""

import asyncio
import itertools
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Deque, Dict, List, Optional, Set, TYPE_CHECKING

import asyncpg

from shared.errors import (
    ConnectError,
    IdleConnectionError,
    PoolClosedError,
    PoolExhaustedError,
    QueryError,
    ShutdownError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_on_exception

if TYPE_CHECKING:
    import ssl
    from ..config import DatabaseEndpointConfig
    from .iam import CredentialProvider


class IdleErrorPolicy(str, Enum):
    """What to do when an idle connection dies underneath the pool."""
    FATAL = "fatal"
    EVICT = "evict"


class ConnectionState(str, Enum):
    """Lifecycle of a physical connection."""
    CONNECTING = "connecting"
    IDLE = "idle"
    IN_USE = "in_use"
    ERRORED = "errored"
    CLOSED = "closed"


@dataclass
class PoolSettings:
    """Pool sizing, timeouts and failure policy."""
    max_size: int = 10
    acquire_timeout: float = 10.0
    connect_timeout: float = 10.0
    command_timeout: float = 30.0
    shutdown_grace_period: float = 10.0
    connect_attempts: int = 1
    connect_retry_delay: float = 0.5
    idle_error_policy: IdleErrorPolicy = IdleErrorPolicy.FATAL


_connection_ids = itertools.count(1)


class PooledConnection:
    """A physical connection owned by the pool, checked out to one caller at a time."""

    def __init__(self, raw: Any, auth_token: str):
        self.id = next(_connection_ids)
        self.raw = raw
        self.auth_token = auth_token
        self.state = ConnectionState.CONNECTING
        self.created_at = time.time()
        self.error: Optional[BaseException] = None

    def __repr__(self) -> str:
        return f"<PooledConnection id={self.id} state={self.state.value}>"

    @property
    def errored(self) -> bool:
        return self.error is not None

    def mark_errored(self, error: BaseException):
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.ERRORED
        self.error = error

    async def fetch(self, sql: str, *params: Any, timeout: Optional[float] = None) -> List[Any]:
        return await self._run(self.raw.fetch, sql, *params, timeout=timeout)

    async def execute(self, sql: str, *params: Any, timeout: Optional[float] = None) -> str:
        return await self._run(self.raw.execute, sql, *params, timeout=timeout)

    async def _run(self, method: Callable, sql: str, *params: Any, timeout: Optional[float] = None) -> Any:
        try:
            return await method(sql, *params, timeout=timeout)
        except asyncpg.PostgresError:
            # Reported by the server; the protocol is still in sync.
            raise
        except BaseException as e:
            # Transport failure, timeout or cancellation: state unknown.
            self.mark_errored(e)
            raise


class ConnectionPool:
    """Bounded pool of IAM-authenticated asyncpg connections."""

    def __init__(self,
                 endpoint: "DatabaseEndpointConfig",
                 credential_provider: "CredentialProvider",
                 *,
                 settings: Optional[PoolSettings] = None,
                 ssl_context: Optional["ssl.SSLContext"] = None,
                 connector: Optional[Callable[..., Any]] = None,
                 metrics: Optional[MetricsCollector] = None,
                 on_fatal: Optional[Callable[[IdleConnectionError], None]] = None):
        self.endpoint = endpoint
        self.credential_provider = credential_provider
        self.settings = settings or PoolSettings()
        self.ssl_context = ssl_context
        self.metrics = metrics
        self.on_fatal = on_fatal
        self.fatal_error: Optional[IdleConnectionError] = None
        self.logger = get_logger("todos.persistence.pool")

        self._connect = connector or asyncpg.connect
        self._idle: Deque[PooledConnection] = deque()
        self._in_use: Set[PooledConnection] = set()
        self._by_raw: Dict[int, PooledConnection] = {}
        self._outstanding = 0
        self._cond = asyncio.Condition()
        self._closing = False
        self._closed = False
        self._shutdown_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self._open_connection = retry_on_exception(
            (ConnectError,),
            RetryConfig(
                max_attempts=self.settings.connect_attempts,
                base_delay=self.settings.connect_retry_delay,
                max_delay=max(self.settings.connect_retry_delay, 5.0),
            ),
            name="pool.open_connection",
        )(self._open_connection_once)

    @property
    def outstanding(self) -> int:
        """Physical connections owned by the pool, including ones being opened."""
        return self._outstanding

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    @property
    def closing(self) -> bool:
        return self._closing

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> Dict[str, Any]:
        return {
            "outstanding": self._outstanding,
            "idle": len(self._idle),
            "in_use": len(self._in_use),
            "max_size": self.settings.max_size,
            "closing": self._closing,
            "closed": self._closed,
        }

    async def acquire(self, timeout: Optional[float] = None) -> PooledConnection:
        """Check out a connection, opening one if below max_size.

        Waits cooperatively while the pool is at capacity; gives up with
        PoolExhaustedError after the acquire timeout.
        """
        timeout = self.settings.acquire_timeout if timeout is None else timeout
        if self.metrics:
            with self.metrics.time_operation("db_pool_acquire_seconds"):
                return await self._acquire(timeout)
        return await self._acquire(timeout)

    async def _acquire(self, timeout: float) -> PooledConnection:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        async with self._cond:
            while True:
                self._check_open()

                if self._idle:
                    conn = self._idle.popleft()
                    if conn.raw.is_closed():
                        self._forget(conn, "error")
                        continue
                    self._checkout(conn)
                    return conn

                if self._outstanding < self.settings.max_size:
                    self._outstanding += 1
                    self._report_outstanding()
                    break

                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._exhausted(timeout)
                try:
                    await asyncio.wait_for(self._cond.wait(), remaining)
                except asyncio.TimeoutError:
                    self._cond.notify()
                    raise self._exhausted(timeout) from None
                except asyncio.CancelledError:
                    # Hand a notification this waiter may have consumed to the next one.
                    self._cond.notify()
                    raise

        # A slot is reserved; open outside the lock so other callers proceed.
        try:
            conn = await self._open_connection()
        except BaseException:
            self._outstanding -= 1
            self._report_outstanding()
            await self._notify()
            raise

        self._by_raw[id(conn.raw)] = conn
        if self._closing:
            try:
                await self._discard(conn, "shutdown")
            except Exception as e:
                self.logger.warning("Error closing connection opened during shutdown", connection_id=conn.id, error=str(e))
            raise PoolClosedError()

        self._checkout(conn)
        return conn

    async def _open_connection_once(self) -> PooledConnection:
        try:
            token = await self.credential_provider()
        except ConnectError:
            if self.metrics:
                self.metrics.record_connect_failure()
            raise
        except Exception as e:
            if self.metrics:
                self.metrics.record_connect_failure()
            self.logger.error("Credential provider failed", error=str(e))
            raise ConnectError(f"Failed to obtain database credentials: {e}") from e

        try:
            raw = await self._connect(
                host=self.endpoint.host,
                port=self.endpoint.port,
                user=self.endpoint.user,
                database=self.endpoint.database,
                password=token,
                ssl=self.ssl_context,
                timeout=self.settings.connect_timeout,
                command_timeout=self.settings.command_timeout,
            )
        except Exception as e:
            if self.metrics:
                self.metrics.record_connect_failure()
            self.logger.error(
                "Failed to open database connection",
                host=self.endpoint.host,
                port=self.endpoint.port,
                error=str(e)
            )
            raise ConnectError(
                f"Failed to connect to database: {e}",
                details={"host": self.endpoint.host, "port": self.endpoint.port}
            ) from e

        conn = PooledConnection(raw, token)
        raw.add_termination_listener(self._on_termination)
        if self.metrics:
            self.metrics.record_connection_opened()
        self.logger.info("Database pool connected a client using IAM token", connection_id=conn.id)
        return conn

    async def release(self, conn: PooledConnection):
        """Return a connection; errored or closed connections are discarded."""
        if conn not in self._in_use:
            self.logger.warning("Ignoring release of connection not checked out", connection_id=conn.id)
            return
        self._in_use.discard(conn)

        if conn.errored or self._closing or conn.raw.is_closed():
            reason = "error" if conn.errored or conn.raw.is_closed() else "shutdown"
            try:
                await self._discard(conn, reason)
            except Exception as e:
                self.logger.warning("Error closing discarded connection", connection_id=conn.id, error=str(e))
        else:
            conn.state = ConnectionState.IDLE
            self._idle.append(conn)

        await self._notify()

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None) -> AsyncIterator[PooledConnection]:
        """Scoped acquisition; the connection is released on every exit path."""
        conn = await self.acquire(timeout)
        try:
            yield conn
        finally:
            await self.release(conn)

    async def query(self, sql: str, *params: Any, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Run a statement on a pooled connection and return rows as dicts."""
        async with self.connection() as conn:
            try:
                rows = await conn.fetch(sql, *params, timeout=self._command_timeout(timeout))
            except (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError) as e:
                raise QueryError(f"Query failed: {e}", details={"connection_id": conn.id}) from e
        return [dict(row) for row in rows]

    async def execute(self, sql: str, *params: Any, timeout: Optional[float] = None) -> str:
        """Run a statement on a pooled connection and return its status."""
        async with self.connection() as conn:
            try:
                return await conn.execute(sql, *params, timeout=self._command_timeout(timeout))
            except (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError) as e:
                raise QueryError(f"Statement failed: {e}", details={"connection_id": conn.id}) from e

    async def shutdown(self, grace_period: Optional[float] = None):
        """Stop acquisitions, drain checked-out connections, close everything.

        Safe to call more than once; later calls wait for the first one and
        never raise.
        """
        if self._shutdown_task is not None:
            if not self._shutdown_task.done():
                await asyncio.wait({self._shutdown_task})
            return

        self._shutdown_task = asyncio.ensure_future(self._shutdown(grace_period))
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self, grace_period: Optional[float]):
        grace = self.settings.shutdown_grace_period if grace_period is None else grace_period
        self.logger.info(
            "Shutting down database pool",
            in_use=len(self._in_use),
            idle=len(self._idle),
            grace_period=grace
        )

        async with self._cond:
            self._closing = True
            self._cond.notify_all()
            if self._in_use:
                try:
                    await asyncio.wait_for(self._cond.wait_for(lambda: not self._in_use), grace)
                except asyncio.TimeoutError:
                    self.logger.warning(
                        "Grace period elapsed with connections still checked out",
                        in_use=len(self._in_use)
                    )
            idle = list(self._idle)
            self._idle.clear()
            stragglers = list(self._in_use)
            self._in_use.clear()

        errors: List[Exception] = []
        for conn in idle:
            try:
                await self._discard(conn, "shutdown")
            except Exception as e:
                errors.append(e)
        for conn in stragglers:
            conn.mark_errored(PoolClosedError())
            try:
                await self._discard(conn, "shutdown", force=True)
            except Exception as e:
                errors.append(e)

        self._closed = True
        for task in list(self._background):
            task.cancel()

        if errors:
            self.logger.error("Error closing database pool", failures=len(errors), error=str(errors[0]))
            raise ShutdownError(
                f"Failed to close {len(errors)} database connection(s)",
                details={"errors": [str(e) for e in errors]}
            ) from errors[0]

        self.logger.info("Database pool closed")

    def _on_termination(self, raw: Any):
        """asyncpg termination listener for every pooled connection."""
        conn = self._by_raw.get(id(raw))
        if conn is None or conn.state is ConnectionState.CLOSED:
            return

        if conn.state is ConnectionState.IDLE:
            self._handle_idle_error(conn)
        else:
            # Checked out; the holder's release will discard it.
            conn.mark_errored(ConnectionError("connection terminated while in use"))

    def _handle_idle_error(self, conn: PooledConnection):
        try:
            self._idle.remove(conn)
        except ValueError:
            pass
        self._forget(conn, "idle_error")

        error = IdleConnectionError(details={"connection_id": conn.id})
        if self.metrics:
            self.metrics.record_idle_connection_error()

        if self.settings.idle_error_policy is IdleErrorPolicy.EVICT:
            self.logger.warning("Evicted idle database connection after unexpected termination",
                                connection_id=conn.id)
        else:
            self.logger.error("Unexpected error on idle database connection", connection_id=conn.id)
            self.fatal_error = error
            if self.on_fatal is not None:
                self.on_fatal(error)

        task = asyncio.ensure_future(self._notify())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _discard(self, conn: PooledConnection, reason: str, force: bool = False):
        """Close a physical connection and free its slot."""
        self._forget(conn, reason)
        try:
            if force:
                conn.raw.terminate()
            else:
                await conn.raw.close(timeout=self.settings.connect_timeout)
        except Exception:
            conn.raw.terminate()
            raise

    def _forget(self, conn: PooledConnection, reason: str):
        conn.state = ConnectionState.CLOSED
        self._by_raw.pop(id(conn.raw), None)
        self._outstanding -= 1
        self._report_outstanding()
        if self.metrics:
            self.metrics.record_connection_closed(reason)
        self.logger.debug("Database connection closed", connection_id=conn.id, reason=reason)

    async def _notify(self):
        async with self._cond:
            if self._closing:
                self._cond.notify_all()
            else:
                self._cond.notify()

    def _checkout(self, conn: PooledConnection):
        conn.state = ConnectionState.IN_USE
        self._in_use.add(conn)

    def _check_open(self):
        if self._closing:
            raise PoolClosedError()

    def _exhausted(self, timeout: float) -> PoolExhaustedError:
        return PoolExhaustedError(
            "Timed out waiting for a database connection",
            details={"max_size": self.settings.max_size, "timeout": timeout}
        )

    def _report_outstanding(self):
        if self.metrics:
            self.metrics.set_outstanding_connections(self._outstanding)

    def _command_timeout(self, timeout: Optional[float]) -> float:
        return self.settings.command_timeout if timeout is None else timeout
