"""
Generic async CRUD repository over a partitioned, clustered table.

The repository builds the key schema descriptor, entity mapper and query
builder once, at construction, and holds no other state. Every operation is
a single round trip through the injected executor; executor errors are
propagated unchanged.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Iterable, Mapping, TypeVar

from vertector_scyllarepo import cql
from vertector_scyllarepo.accessors import AttributeAccessor, RecordAccessor
from vertector_scyllarepo.config import ScyllaDBRepositoryConfig
from vertector_scyllarepo.exceptions import ValidationError
from vertector_scyllarepo.executor import StatementExecutor
from vertector_scyllarepo.logging_utils import PerformanceLogger
from vertector_scyllarepo.mapper import EntityMapper
from vertector_scyllarepo.naming import PASCAL_CASE, SNAKE_CASE, NamingStrategy, to_column_name
from vertector_scyllarepo.observability import Tracer
from vertector_scyllarepo.schema import KeySchemaDescriptor, RecordTypeMetadata, describe
from vertector_scyllarepo.statements import QueryBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_table_name(record_type: type) -> str:
    """``PersonByCountry`` -> ``person_by_country``."""
    return to_column_name(record_type.__name__, PASCAL_CASE, SNAKE_CASE)


class AsyncRepository(Generic[T]):
    """
    Async repository for one record type and table.

    Keys are passed positionally in declared order: partition key values,
    then clustering key values.

    Example:
        metadata = metadata_for(
            Person,
            partition_key=["country"],
            clustering_key=["first_name", "last_name", "id"],
        )
        people = AsyncRepository(executor, metadata, table="people_by_country")

        await people.save(bob)
        found = await people.find("UK", "Bob", "Bobbington", bob.id)
        uk = await people.find_by_partition("UK")
        await people.delete("UK", "Bob", "Bobbington", bob.id)
    """

    def __init__(
        self,
        executor: StatementExecutor,
        metadata: RecordTypeMetadata,
        *,
        table: str | None = None,
        keyspace: str | None = None,
        naming: NamingStrategy | None = None,
        column_overrides: Mapping[str, str] | None = None,
        accessor: RecordAccessor[T] | None = None,
        enable_tracing: bool = False,
    ) -> None:
        """
        Initialize repository.

        Args:
            executor: Executes statement descriptions
            metadata: Field metadata for the record type
            table: Table name (default: snake_case record type name)
            keyspace: Keyspace for the table (default: the executor's)
            naming: Field-to-column naming strategy (default: snake_case both ways)
            column_overrides: Explicit column names keyed by field identifier
            accessor: Reads and builds records (default: attribute access on
                      ``metadata.record_type``)
            enable_tracing: Wrap operations in OpenTelemetry spans

        Raises:
            ConfigurationError: If the table or keyspace name is invalid
            SchemaError: If the key declaration is malformed
        """
        record_type = metadata.record_type
        if table is None:
            if record_type is None:
                raise ValueError("A table name is required when metadata has no record type")
            table = default_table_name(record_type)

        cql.validate_identifier(table, "table")
        if keyspace is not None:
            cql.validate_identifier(keyspace, "keyspace")

        if accessor is None:
            if record_type is None:
                raise ValueError("An accessor is required when metadata has no record type")
            accessor = AttributeAccessor(record_type)

        self.executor = executor
        self.table = table
        self.keyspace = keyspace
        self.descriptor: KeySchemaDescriptor = describe(metadata, naming, column_overrides)
        self.mapper: EntityMapper[T] = EntityMapper(self.descriptor, accessor, record_type=record_type)
        self.queries = QueryBuilder(table, self.descriptor, keyspace=keyspace)
        self.tracer = Tracer(service_name=f"scylladb_repository_{table}", enabled=enable_tracing)

        logger.info(
            f"Repository ready for {self.descriptor.record_name} on table '{table}' "
            f"(partition={self.descriptor.partition_columns}, "
            f"clustering={self.descriptor.clustering_columns})"
        )

    @classmethod
    def from_config(
        cls,
        executor: StatementExecutor,
        metadata: RecordTypeMetadata,
        config: ScyllaDBRepositoryConfig,
        **kwargs: Any,
    ) -> "AsyncRepository[T]":
        """
        Create a repository using the naming conventions and tracing flag of
        a ``ScyllaDBRepositoryConfig``.

        Other keyword arguments (``table``, ``column_overrides``, ...) are
        passed through.

        Example:
            config = load_config_from_env()
            async with ScyllaDBExecutor.from_config(config) as executor:
                people = AsyncRepository.from_config(executor, metadata, config, table="people_by_country")
        """
        kwargs.setdefault("naming", config.naming.strategy())
        kwargs.setdefault("enable_tracing", config.enable_tracing)
        return cls(executor, metadata, **kwargs)

    async def find(self, *key_values: Any) -> T | None:
        """
        Fetch the record with the given composite key.

        Args:
            *key_values: Partition key values then clustering key values

        Returns:
            The record, or None if no row has that key

        Raises:
            ValidationError: If the number of values is not the composite key
                             length, or a value is None
            DecodingError: If the row does not match the record type
        """
        key = self.mapper.encode_key_tuple(key_values)
        statement = self.queries.select_by_key(key)

        async with self._operation("find", key=key_values):
            rows = await self.executor.execute(statement)

        if not rows:
            return None
        return self.mapper.decode(rows[0])

    async def exists(self, *key_values: Any) -> bool:
        """Return True if a row with the given composite key exists."""
        return await self.find(*key_values) is not None

    async def find_all(self) -> list[T]:
        """
        Fetch every record in the table.

        Ordering is store-defined: rows within a partition follow the
        clustering order, partitions come back in token order.
        """
        statement = self.queries.select_all()

        async with self._operation("find_all"):
            rows = await self.executor.execute(statement)

        return self.mapper.decode_all(rows)

    async def find_by_partition(self, *partition_values: Any, clustering: Iterable[Any] = ()) -> list[T]:
        """
        Fetch every record in one partition.

        Args:
            *partition_values: One value per partition key field
            clustering: Optional equality prefix of the clustering key, as a
                        sequence of values (``["Bob"]``, not ``"Bob"``)

        Raises:
            ValidationError: If the number of partition values is not the
                             partition key length, a value is None, or
                             ``clustering`` is a bare string or bytes
        """
        if isinstance(clustering, (str, bytes)):
            raise ValidationError(
                "clustering must be a sequence of values, not a single string",
                field="clustering_key",
                value=clustering
            )
        predicates = self.mapper.encode_partition(partition_values, tuple(clustering))
        statement = self.queries.select_by_partition(predicates)

        async with self._operation("find_by_partition", partition=partition_values):
            rows = await self.executor.execute(statement)

        return self.mapper.decode_all(rows)

    async def save(self, record: T) -> T:
        """
        Insert or replace the row with the record's composite key.

        Returns:
            The same record, unchanged

        Raises:
            ValidationError: If a key field is None or the record is of the
                             wrong type
        """
        row = self.mapper.encode(record)
        statement = self.queries.upsert(row)

        async with self._operation("save"):
            await self.executor.execute(statement)

        return record

    async def save_all(self, records: Iterable[T]) -> list[T]:
        """
        Save records one after another.

        Every record is encoded before the first write, so a record with a
        missing key fails the whole call before anything is written.
        """
        records = list(records)
        statements = [self.queries.upsert(self.mapper.encode(record)) for record in records]

        async with self._operation("save_all", count=len(statements)):
            for statement in statements:
                await self.executor.execute(statement)

        return records

    async def delete(self, *key_values: Any) -> None:
        """
        Delete the record with the given composite key.

        Deleting a key that does not exist is a no-op.

        Raises:
            ValidationError: If the number of values is not the composite key
                             length, or a value is None
        """
        key = self.mapper.encode_key_tuple(key_values)
        statement = self.queries.point_delete(key)

        async with self._operation("delete", key=key_values):
            await self.executor.execute(statement)

    @asynccontextmanager
    async def _operation(self, name: str, **attributes: Any) -> AsyncIterator[None]:
        """Tracing span plus debug-level performance logging for one call."""
        async with self.tracer.span(f"repository.{name}", attributes={"table": self.table, **attributes}):
            async with PerformanceLogger(name, logger=logger, level=logging.DEBUG, table=self.table):
                yield
