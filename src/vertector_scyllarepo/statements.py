"""
Statement descriptions and the query builder.

The builder produces immutable descriptions of what to run, not query
strings. An executor renders them for its transport (see ``cql.render``
for CQL).
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

from vertector_scyllarepo.exceptions import ValidationError
from vertector_scyllarepo.schema import KeySchemaDescriptor

logger = logging.getLogger(__name__)

Predicates = tuple[tuple[str, Any], ...]


@dataclass(frozen=True)
class SelectAll:
    """Scan every row of a table."""
    table: str
    columns: tuple[str, ...]
    limit: int | None = None
    keyspace: str | None = None


@dataclass(frozen=True)
class SelectByPartition:
    """
    Select rows by equality on the partition key, optionally narrowed by an
    equality prefix of the clustering key.
    """
    table: str
    columns: tuple[str, ...]
    predicates: Predicates
    limit: int | None = None
    keyspace: str | None = None


@dataclass(frozen=True)
class Upsert:
    """Write every column of a row; replaces any row with the same key."""
    table: str
    values: tuple[tuple[str, Any], ...]
    keyspace: str | None = None


@dataclass(frozen=True)
class PointDelete:
    """Delete the single row whose composite key equals ``key``."""
    table: str
    key: Predicates
    keyspace: str | None = None


Statement = Union[SelectAll, SelectByPartition, Upsert, PointDelete]


class QueryBuilder:
    """
    Assembles statement descriptions for one table and key schema.

    Example:
        builder = QueryBuilder("person", descriptor)
        statement = builder.select_by_partition((("country", "UK"),))
    """

    def __init__(self, table: str, descriptor: KeySchemaDescriptor, keyspace: str | None = None):
        self.table = table
        self.descriptor = descriptor
        self.keyspace = keyspace

    def select_all(self, limit: int | None = None) -> SelectAll:
        return SelectAll(self.table, self.descriptor.column_names, self._check_limit(limit), self.keyspace)

    def select_by_partition(self, predicates: Predicates, limit: int | None = None) -> SelectByPartition:
        """
        Equality predicates over the full partition key, optionally followed
        by a clustering key prefix, all in declared order.

        Raises:
            ValidationError: If the predicate columns are not the partition
                             key followed by a clustering key prefix
        """
        predicates = tuple(predicates)
        columns = tuple(column for column, _ in predicates)
        partition = self.descriptor.partition_columns
        clustering = self.descriptor.clustering_columns

        valid = (
            columns[:len(partition)] == partition
            and columns[len(partition):] == clustering[:len(columns) - len(partition)]
        )
        if not valid:
            raise ValidationError(
                f"Predicates must cover partition key {partition} followed by a prefix of "
                f"clustering key {clustering}, got {columns}",
                field="predicates",
                value=columns
            )

        return SelectByPartition(
            self.table,
            self.descriptor.column_names,
            predicates,
            self._check_limit(limit),
            self.keyspace,
        )

    def select_by_key(self, key: Predicates) -> SelectByPartition:
        """Point select: the partition scan narrowed to one composite key."""
        self._check_full_key(key)
        return self.select_by_partition(key, limit=1)

    def upsert(self, row: Mapping[str, Any]) -> Upsert:
        """
        Write all columns of ``row``. The same statement serves inserts and
        updates; the store replaces any row with an equal composite key.

        Raises:
            ValidationError: If a key column is missing from the row
        """
        missing = [spec.column_name for spec in self.descriptor.key_fields if spec.column_name not in row]
        if missing:
            raise ValidationError(
                f"Upsert is missing key columns {missing}",
                field="row",
                value=tuple(row)
            )
        return Upsert(self.table, tuple(row.items()), self.keyspace)

    def point_delete(self, key: Predicates) -> PointDelete:
        self._check_full_key(key)
        return PointDelete(self.table, tuple(key), self.keyspace)

    def _check_full_key(self, key: Predicates) -> None:
        columns = tuple(column for column, _ in key)
        expected = self.descriptor.partition_columns + self.descriptor.clustering_columns
        if columns != expected:
            raise ValidationError(
                f"Point operations need the full composite key {expected}, got {columns}",
                field="key",
                value=columns
            )

    @staticmethod
    def _check_limit(limit: int | None) -> int | None:
        if limit is not None and limit < 1:
            raise ValidationError("Limit must be a positive integer", field="limit", value=limit)
        return limit
