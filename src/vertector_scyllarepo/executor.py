"""
Statement executors.

``StatementExecutor`` is the interface the repository depends on.
``ScyllaDBExecutor`` implements it over a scylla-driver ``Session``: it
renders statement descriptions to CQL, bridges the driver's callbacks onto
the asyncio event loop, and wraps driver exceptions with context.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Mapping, Protocol

from cassandra import (
    AlreadyExists,
    AuthenticationFailed,
    ConfigurationException,
    CoordinationFailure,
    DriverException,
    InvalidRequest,
    OperationTimedOut,
    ReadFailure,
    ReadTimeout,
    RequestExecutionException,
    Unauthorized,
    Unavailable,
    WriteFailure,
    WriteTimeout,
)
from cassandra.cluster import NoHostAvailable, Session
from cassandra.query import SimpleStatement

from vertector_scyllarepo import cql
from vertector_scyllarepo.exceptions import (
    RepositoryError,
    StoreAuthenticationError,
    StoreConnectionError,
    StoreError,
    StoreQueryError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from vertector_scyllarepo.mapper import row_to_mapping
from vertector_scyllarepo.observability import EnhancedMetrics
from vertector_scyllarepo.statements import PointDelete, SelectAll, SelectByPartition, Statement, Upsert

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

_OPERATION_NAMES = {
    SelectAll: "select_all",
    SelectByPartition: "select_by_partition",
    Upsert: "upsert",
    PointDelete: "point_delete",
}


class StatementExecutor(Protocol):
    """Executes statement descriptions against a store."""

    async def execute(self, statement: Statement) -> list[Row]:
        """Run one statement and return its rows (empty for writes)."""
        ...

    async def run_setup_script(self, statements: Iterable[str]) -> None:
        """Run DDL statements once, in order, before the store is used."""
        ...


def split_setup_script(script: str) -> list[str]:
    """
    Split CQL script text into statements.

    Drops ``--`` and ``//`` comment lines, splits on ``;``, strips each
    statement and skips blank entries.
    """
    lines = [
        line for line in script.splitlines()
        if not line.strip().startswith(("--", "//"))
    ]
    return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def load_setup_script(path: str | Path) -> list[str]:
    """
    Read a CQL setup script from disk.

    Args:
        path: Path to a ``.cql`` file

    Returns:
        Statements in file order
    """
    statements = split_setup_script(Path(path).read_text(encoding="utf-8"))
    logger.info(f"Loaded {len(statements)} setup statements from {path}")
    return statements


def _set_result(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _set_exception(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)


class ScyllaDBExecutor:
    """
    Async executor over a ScyllaDB/Cassandra session.

    Example:
        async with ScyllaDBExecutor.from_contact_points(["127.0.0.1"], keyspace="people") as executor:
            await executor.run_setup_script(load_setup_script("schema/people.cql"))
            repository = AsyncRepository(executor, metadata, table="person")
    """

    def __init__(
        self,
        session: Session,
        keyspace: str | None = None,
        *,
        request_timeout: float = 10.0,
        metrics: EnhancedMetrics | None = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            session: ScyllaDB/Cassandra session
            keyspace: Keyspace to qualify table names with (None = session keyspace)
            request_timeout: Timeout for each request in seconds
            metrics: Metrics sink (a new one is created if omitted)
        """
        if keyspace is not None:
            cql.validate_identifier(keyspace, "keyspace")

        self.session = session
        self.keyspace = keyspace
        self.request_timeout = request_timeout
        self.metrics = metrics or EnhancedMetrics(service_name=f"scylladb_repository_{keyspace or 'default'}")

    @classmethod
    @asynccontextmanager
    async def from_contact_points(
        cls,
        contact_points: list[str],
        keyspace: str | None = None,
        *,
        port: int = 9042,
        username: str | None = None,
        password: str | None = None,
        executor_threads: int = 2,
        connect_timeout: float = 5.0,
        request_timeout: float = 10.0,
        metrics: EnhancedMetrics | None = None,
    ) -> AsyncIterator["ScyllaDBExecutor"]:
        """
        Create an executor that owns its cluster connection.

        Args:
            metrics: Metrics sink for the executor (a new one is created if omitted)

        Yields:
            ScyllaDBExecutor instance; the cluster is shut down on exit
        """
        from cassandra.auth import PlainTextAuthProvider
        from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile
        from cassandra.io.asyncioreactor import AsyncioConnection
        from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy

        # TokenAwarePolicy routes requests straight to a replica owning the partition
        default_profile = ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            request_timeout=request_timeout,
        )

        cluster_config: dict[str, Any] = {
            "contact_points": contact_points,
            "port": port,
            "connection_class": AsyncioConnection,
            "executor_threads": executor_threads,
            "connect_timeout": connect_timeout,
            "execution_profiles": {EXEC_PROFILE_DEFAULT: default_profile},
        }
        if username:
            cluster_config["auth_provider"] = PlainTextAuthProvider(username=username, password=password)

        cluster = Cluster(**cluster_config)
        logger.info(f"Created cluster for contact points {contact_points}:{port}")

        loop = asyncio.get_running_loop()
        try:
            # connect() is synchronous; run it in a thread once at startup
            try:
                session = await loop.run_in_executor(None, cluster.connect)
            except NoHostAvailable as e:
                raise StoreConnectionError(
                    f"No hosts available at {contact_points}",
                    original_error=e
                )
            except AuthenticationFailed as e:
                raise StoreAuthenticationError(original_error=e, username=username)

            yield cls(session, keyspace, request_timeout=request_timeout, metrics=metrics)

        finally:
            await loop.run_in_executor(None, cluster.shutdown)
            logger.info("Cluster shut down")

    @classmethod
    @asynccontextmanager
    async def from_config(cls, config) -> AsyncIterator["ScyllaDBExecutor"]:
        """
        Create an executor from a ``ScyllaDBRepositoryConfig``.

        Runs the configured setup script, if any, before yielding. Metrics
        follow ``config.metrics``: a disabled config records nothing.
        """
        auth = config.auth
        metrics = EnhancedMetrics(
            service_name=f"scylladb_repository_{config.keyspace}",
            percentiles=list(config.metrics.percentiles),
            enabled=config.metrics.enabled,
        )
        async with cls.from_contact_points(
            config.contact_points,
            config.keyspace,
            port=config.port,
            username=auth.username if auth.enabled else None,
            password=auth.password if auth.enabled else None,
            executor_threads=config.pool.executor_threads,
            connect_timeout=config.pool.connect_timeout,
            request_timeout=config.pool.request_timeout,
            metrics=metrics,
        ) as executor:
            if config.setup_script:
                await executor.run_setup_script(load_setup_script(config.setup_script))
            yield executor

    async def execute(self, statement: Statement) -> list[Row]:
        """
        Render and execute a statement description.

        Returns:
            Rows as dictionaries keyed by column name

        Raises:
            StoreConnectionError: If no hosts are available
            StoreTimeoutError: If the request times out
            StoreUnavailableError: If required replicas are unavailable
            StoreAuthenticationError: If authentication/authorization fails
            StoreQueryError: If the query fails server-side
        """
        query, parameters = cql.render(statement, self.keyspace)
        operation = _OPERATION_NAMES.get(type(statement), type(statement).__name__)
        return await self.execute_cql(query, parameters, operation=operation)

    async def execute_cql(
        self,
        query: str,
        parameters: tuple | None = None,
        *,
        operation: str = "cql",
    ) -> list[Row]:
        """Execute raw CQL with error handling and metrics."""
        start_time = time.perf_counter()

        try:
            rows = await self._execute_async(SimpleStatement(query), parameters or None)
            latency_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record_query(operation, latency_ms, success=True)
            logger.debug(
                f"Executed {operation} in {latency_ms:.2f}ms",
                extra={"statement": operation, "rows": len(rows)}
            )
            return rows

        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            error = self._wrap_error(e, query)
            if error is None:
                # AlreadyExists from CREATE ... IF NOT EXISTS races
                self.metrics.record_query(operation, latency_ms, success=True)
                logger.debug(f"AlreadyExists exception (expected): {e}")
                return []
            self.metrics.record_query(operation, latency_ms, success=False, error_type=type(e).__name__)
            if error is e:
                raise
            raise error from e

    async def run_setup_script(self, statements: Iterable[str]) -> None:
        """
        Run setup statements one at a time, in order.

        Each statement is stripped of surrounding whitespace; blank entries
        are skipped.
        """
        count = 0
        for statement in statements:
            statement = statement.strip()
            if not statement:
                continue
            await self.execute_cql(statement, operation="setup")
            count += 1
        logger.info(f"Setup script complete: {count} statements executed")

    async def _execute_async(self, statement: SimpleStatement, parameters: tuple | None) -> list[Row]:
        """
        Execute a statement and collect every result page.

        The driver's ResponseFuture callbacks fire on the driver's I/O
        thread; results are handed back to this event loop thread-safely.
        """
        loop = asyncio.get_running_loop()
        asyncio_future = loop.create_future()
        rows: list[Row] = []

        response_future = self.session.execute_async(
            statement, parameters, timeout=self.request_timeout
        )

        def on_success(page):
            if page:
                rows.extend(dict(row_to_mapping(row)) for row in page)
            if response_future.has_more_pages:
                response_future.start_fetching_next_page()
            else:
                loop.call_soon_threadsafe(_set_result, asyncio_future, rows)

        def on_error(error):
            loop.call_soon_threadsafe(_set_exception, asyncio_future, error)

        response_future.add_callbacks(on_success, on_error)

        return await asyncio_future

    def _wrap_error(self, e: Exception, query: str) -> Exception | None:
        """Map a driver exception to the store error family (None = not an error)."""
        if isinstance(e, RepositoryError):
            return e

        if isinstance(e, NoHostAvailable):
            return StoreConnectionError("No hosts available for query execution", original_error=e)

        if isinstance(e, (ReadTimeout, WriteTimeout)):
            operation = "read" if isinstance(e, ReadTimeout) else "write"
            return StoreTimeoutError(
                f"{operation.capitalize()} operation timed out",
                original_error=e,
                operation_type=operation
            )

        if isinstance(e, OperationTimedOut):
            return StoreTimeoutError(
                "Client-side operation timeout",
                original_error=e,
                timeout_seconds=self.request_timeout
            )

        if isinstance(e, Unavailable):
            consistency = getattr(e, 'consistency', None)
            return StoreUnavailableError(
                "Required replicas unavailable",
                original_error=e,
                consistency_level=str(consistency) if consistency else None,
                required_replicas=getattr(e, 'required_replicas', None),
                alive_replicas=getattr(e, 'alive_replicas', None)
            )

        if isinstance(e, (ReadFailure, WriteFailure, CoordinationFailure)):
            operation = "unknown"
            if isinstance(e, ReadFailure):
                operation = "read"
            elif isinstance(e, WriteFailure):
                operation = "write"
            return StoreQueryError(
                f"Coordination failure during {operation} operation",
                original_error=e,
                query=query
            )

        if isinstance(e, (Unauthorized, AuthenticationFailed)):
            return StoreAuthenticationError(original_error=e)

        if isinstance(e, AlreadyExists):
            return None

        if isinstance(e, (InvalidRequest, ConfigurationException)):
            return StoreQueryError(f"Invalid query or configuration: {e}", original_error=e, query=query)

        if isinstance(e, RequestExecutionException):
            return StoreQueryError(f"Query execution failed: {e}", original_error=e, query=query)

        if isinstance(e, DriverException):
            return StoreError(f"Driver error: {e}", original_error=e)

        logger.error(f"Unexpected error executing statement: {e}", exc_info=e)
        return StoreError(f"Unexpected error: {e}", original_error=e)

    def get_metrics(self) -> dict[str, Any]:
        """
        Get statement metrics.

        Returns:
            Dictionary with total_queries, total_errors, error_rate,
            avg/min/max latency, operation counts and error types
        """
        return self.metrics.get_stats()

    def export_metrics(self) -> str:
        """Statement metrics in Prometheus text format, for a scrape endpoint."""
        return self.metrics.export_prometheus()

    def reset_metrics(self) -> None:
        """Reset all statement metrics."""
        self.metrics.reset()
        logger.info("Statement metrics reset")
