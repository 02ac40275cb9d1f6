"""
Entity mapper: converts records to rows for writes and rows back to
records for reads, driven by a key schema descriptor.
"""

import logging
from typing import Any, Generic, Iterable, Mapping, Sequence, TypeVar

from vertector_scyllarepo.accessors import AttributeAccessor, RecordAccessor
from vertector_scyllarepo.exceptions import DecodingError, ValidationError
from vertector_scyllarepo.schema import FieldSpec, KeySchemaDescriptor, normalize_column_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyTuple = tuple[tuple[str, Any], ...]


def row_to_mapping(row: Any) -> Mapping[str, Any]:
    """
    Accept a plain mapping or a driver row.

    The Cassandra driver's default row factory returns named tuples.
    """
    if isinstance(row, Mapping):
        return row
    if hasattr(row, "_asdict"):
        return row._asdict()
    raise DecodingError(f"Unsupported row type: {type(row).__name__}")


class EntityMapper(Generic[T]):
    """
    Bidirectional record/row conversion for one record type.

    Fields are always walked in the descriptor's declared order: partition
    key, clustering key, then plain fields.

    Example:
        mapper = EntityMapper(descriptor, AttributeAccessor(Person), record_type=Person)
        row = mapper.encode(person)
        same = mapper.decode(row)
        key = mapper.encode_key_tuple(["UK", "Bob", "Bobbington", person_id])
    """

    def __init__(
        self,
        descriptor: KeySchemaDescriptor,
        accessor: RecordAccessor[T] | None = None,
        *,
        record_type: type[T] | None = None,
    ) -> None:
        if accessor is None:
            if record_type is None:
                raise ValueError("EntityMapper needs an accessor or a record_type")
            accessor = AttributeAccessor(record_type)

        self.descriptor = descriptor
        self.accessor = accessor
        self.record_type = record_type
        self._by_normalized_column = {
            normalize_column_name(spec.column_name): spec for spec in descriptor.all_fields
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def encode(self, record: T) -> dict[str, Any]:
        """
        Convert a record to a row of column values.

        Raises:
            ValidationError: If the record is of the wrong type, lacks a field,
                             or has a None key field
        """
        if self.record_type is not None and not isinstance(record, self.record_type):
            raise ValidationError(
                f"Expected {self.record_type.__name__}, got {type(record).__name__}",
                field="record",
                value=type(record).__name__
            )

        row: dict[str, Any] = {}
        for spec in self.descriptor.all_fields:
            try:
                value = self.accessor.read(record, spec.identifier)
            except AttributeError as e:
                raise ValidationError(
                    "Record has no such field",
                    field=spec.identifier,
                    original_error=e
                )
            if spec.is_key and value is None:
                raise ValidationError(
                    f"{spec.role.value} key field cannot be None",
                    field=spec.identifier,
                    value=value
                )
            row[spec.column_name] = value
        return row

    def encode_key_tuple(self, values: Sequence[Any]) -> KeyTuple:
        """
        Pair a complete composite key with its column names.

        Args:
            values: Partition key values followed by clustering key values,
                    in declared order

        Raises:
            ValidationError: If the number of values is not exactly the
                             composite key length, or a value is None
        """
        values = tuple(values)
        if len(values) != self.descriptor.key_arity:
            raise ValidationError(
                f"Expected {self.descriptor.key_arity} key values "
                f"({', '.join(spec.identifier for spec in self.descriptor.key_fields)}), "
                f"got {len(values)}",
                field="key",
                value=values
            )
        return self._pair(self.descriptor.key_fields, values)

    def encode_partition(
        self,
        values: Sequence[Any],
        clustering_prefix: Sequence[Any] = (),
    ) -> KeyTuple:
        """
        Pair partition key values, plus an optional clustering key prefix,
        with their column names.

        Raises:
            ValidationError: If the partition values do not match the
                             partition key length, the clustering prefix is
                             longer than the clustering key, or a value is None
        """
        values = tuple(values)
        clustering_prefix = tuple(clustering_prefix)
        partition_fields = self.descriptor.partition_fields
        clustering_fields = self.descriptor.clustering_fields

        if len(values) != len(partition_fields):
            raise ValidationError(
                f"Expected {len(partition_fields)} partition key values "
                f"({', '.join(spec.identifier for spec in partition_fields)}), got {len(values)}",
                field="partition_key",
                value=values
            )
        if len(clustering_prefix) > len(clustering_fields):
            raise ValidationError(
                f"Clustering prefix has {len(clustering_prefix)} values but the clustering key "
                f"has only {len(clustering_fields)} columns",
                field="clustering_key",
                value=clustering_prefix
            )

        return (
            self._pair(partition_fields, values)
            + self._pair(clustering_fields[:len(clustering_prefix)], clustering_prefix)
        )

    @staticmethod
    def _pair(specs: Iterable[FieldSpec], values: Sequence[Any]) -> KeyTuple:
        pairs = []
        for spec, value in zip(specs, values):
            if value is None:
                raise ValidationError(
                    f"{spec.role.value} key value cannot be None",
                    field=spec.identifier,
                    value=value
                )
            pairs.append((spec.column_name, value))
        return tuple(pairs)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def decode(self, row: Any) -> T:
        """
        Build a new record from a row.

        Columns the descriptor does not know about are ignored.

        Raises:
            DecodingError: If a descriptor column is absent from the row, or
                           the record cannot be constructed from the values
        """
        mapping = row_to_mapping(row)
        normalized = {normalize_column_name(name): value for name, value in mapping.items()}

        values: dict[str, Any] = {}
        missing = []
        for key, spec in self._by_normalized_column.items():
            if key in normalized:
                values[spec.identifier] = normalized[key]
            else:
                missing.append(spec.column_name)

        if missing:
            raise DecodingError(
                f"Row does not match {self.descriptor.record_name}",
                missing_columns=missing
            )

        try:
            return self.accessor.build(values)
        except (TypeError, ValueError) as e:
            raise DecodingError(
                f"Could not build {self.descriptor.record_name} from row",
                original_error=e
            )

    def decode_all(self, rows: Iterable[Any]) -> list[T]:
        return [self.decode(row) for row in rows]
