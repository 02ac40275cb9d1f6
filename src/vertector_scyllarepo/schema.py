"""
Key schema descriptors for record types.

A descriptor records which fields of a record type form the partition key,
which form the clustering key (and in what order), and which column each
field maps to. It is built once from structural metadata and validated at
build time, so a malformed key declaration fails when the repository is
constructed rather than on first use.
"""

import dataclasses
import datetime
import decimal
import logging
import types
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union, get_args, get_origin, get_type_hints

from vertector_scyllarepo.exceptions import SchemaError
from vertector_scyllarepo.naming import NamingStrategy

logger = logging.getLogger(__name__)


class FieldRole(str, Enum):
    """Role a field plays in the table's primary key."""
    PARTITION = "partition"
    CLUSTERING = "clustering"
    REGULAR = "regular"


@dataclass(frozen=True)
class FieldMetadata:
    """
    Structural metadata for one field of a record type.

    Attributes:
        identifier: Field name on the record type
        role: Partition key, clustering key or plain attribute
        position: Ordinal within the partition or clustering key
        value_kind: CQL type of the column (e.g. "text", "uuid")
        column_name: Explicit column name, bypassing the naming strategy
    """

    identifier: str
    role: FieldRole = FieldRole.REGULAR
    position: int | None = None
    value_kind: str | None = None
    column_name: str | None = None


@dataclass(frozen=True)
class RecordTypeMetadata:
    """Declared fields of a record type, in declaration order."""

    record_type: type | None
    fields: tuple[FieldMetadata, ...]

    @property
    def name(self) -> str:
        return self.record_type.__name__ if self.record_type is not None else "record"


@dataclass(frozen=True)
class FieldSpec:
    """A resolved field: identifier, column name and value kind."""

    identifier: str
    column_name: str
    value_kind: str | None = None
    role: FieldRole = FieldRole.REGULAR
    position: int | None = None

    @property
    def is_key(self) -> bool:
        return self.role is not FieldRole.REGULAR


@dataclass(frozen=True)
class KeySchemaDescriptor:
    """
    Immutable key layout of a record type.

    ``all_fields`` walks partition fields, then clustering fields in
    position order, then plain fields in declaration order. This is the one
    order used for encoding, decoding and positional key tuples.
    """

    record_name: str
    partition_fields: tuple[FieldSpec, ...]
    clustering_fields: tuple[FieldSpec, ...]
    all_fields: tuple[FieldSpec, ...] = field(repr=False)

    @property
    def key_fields(self) -> tuple[FieldSpec, ...]:
        return self.partition_fields + self.clustering_fields

    @property
    def key_arity(self) -> int:
        return len(self.partition_fields) + len(self.clustering_fields)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(spec.column_name for spec in self.all_fields)

    @property
    def partition_columns(self) -> tuple[str, ...]:
        return tuple(spec.column_name for spec in self.partition_fields)

    @property
    def clustering_columns(self) -> tuple[str, ...]:
        return tuple(spec.column_name for spec in self.clustering_fields)


def normalize_column_name(name: str) -> str:
    """
    Normalize a column name for comparison.

    CQL folds unquoted identifiers to lower case, and rows may come back in a
    different separator convention than the descriptor uses.
    """
    return "".join(ch for ch in name.lower() if ch.isalnum())


def _order_key_fields(
    fields: Sequence[FieldMetadata],
    role: FieldRole,
    record_name: str,
    *,
    positions_required: bool,
) -> list[FieldMetadata]:
    """Sort key fields by position, checking positions run 0..n-1."""
    positions = [f.position for f in fields]

    if all(p is None for p in positions):
        if positions_required and fields:
            raise SchemaError(
                f"{role.value} key fields {[f.identifier for f in fields]} must declare a position",
                record_type=record_name
            )
        return list(fields)

    if any(p is None for p in positions):
        missing = [f.identifier for f in fields if f.position is None]
        raise SchemaError(
            f"{role.value} key fields {missing} are missing a position",
            record_type=record_name
        )

    seen: dict[int, str] = {}
    for f in fields:
        if f.position < 0:
            raise SchemaError(
                f"{role.value} key field '{f.identifier}' has negative position {f.position}",
                record_type=record_name
            )
        if f.position in seen:
            raise SchemaError(
                f"{role.value} key fields '{seen[f.position]}' and '{f.identifier}' "
                f"share position {f.position}",
                record_type=record_name
            )
        seen[f.position] = f.identifier

    expected = set(range(len(fields)))
    if set(seen) != expected:
        gaps = sorted(expected - set(seen))
        raise SchemaError(
            f"{role.value} key positions must run from 0 to {len(fields) - 1} without gaps; "
            f"missing {gaps}",
            record_type=record_name
        )

    return sorted(fields, key=lambda f: f.position)


def describe(
    metadata: RecordTypeMetadata,
    naming: NamingStrategy | None = None,
    overrides: Mapping[str, str] | None = None,
) -> KeySchemaDescriptor:
    """
    Build the key schema descriptor for a record type.

    Args:
        metadata: Structural metadata for every field of the record type
        naming: Field-to-column naming strategy (default: snake_case both ways)
        overrides: Explicit column names keyed by field identifier; these
                   take precedence over per-field ``column_name`` metadata

    Returns:
        Validated, immutable descriptor

    Raises:
        SchemaError: If no partition key is declared, key positions collide
                     or skip a value, or two fields resolve to the same column
    """
    naming = naming or NamingStrategy.default()
    overrides = dict(overrides or {})
    record_name = metadata.name

    identifiers = [f.identifier for f in metadata.fields]
    duplicates = sorted({i for i in identifiers if identifiers.count(i) > 1})
    if duplicates:
        raise SchemaError(f"fields declared more than once: {duplicates}", record_type=record_name)

    unknown = sorted(set(overrides) - set(identifiers))
    if unknown:
        raise SchemaError(f"column overrides name unknown fields: {unknown}", record_type=record_name)

    partition = [f for f in metadata.fields if f.role is FieldRole.PARTITION]
    clustering = [f for f in metadata.fields if f.role is FieldRole.CLUSTERING]
    regular = [f for f in metadata.fields if f.role is FieldRole.REGULAR]

    if not partition:
        raise SchemaError("no field is marked as partition key", record_type=record_name)

    partition = _order_key_fields(partition, FieldRole.PARTITION, record_name, positions_required=False)
    clustering = _order_key_fields(clustering, FieldRole.CLUSTERING, record_name, positions_required=True)

    def resolve(f: FieldMetadata, position: int | None) -> FieldSpec:
        if f.identifier in overrides:
            column_name = overrides[f.identifier]
        elif f.column_name is not None:
            column_name = f.column_name
        else:
            column_name = naming.column_name(f.identifier)
        if not column_name:
            raise SchemaError(f"field '{f.identifier}' resolves to an empty column name", record_type=record_name)
        return FieldSpec(
            identifier=f.identifier,
            column_name=column_name,
            value_kind=f.value_kind,
            role=f.role,
            position=position,
        )

    partition_specs = tuple(resolve(f, i) for i, f in enumerate(partition))
    clustering_specs = tuple(resolve(f, i) for i, f in enumerate(clustering))
    regular_specs = tuple(resolve(f, None) for f in regular)
    all_specs = partition_specs + clustering_specs + regular_specs

    columns: dict[str, str] = {}
    for spec in all_specs:
        normalized = normalize_column_name(spec.column_name)
        if normalized in columns:
            raise SchemaError(
                f"fields '{columns[normalized]}' and '{spec.identifier}' both map to column "
                f"'{spec.column_name}'",
                record_type=record_name
            )
        columns[normalized] = spec.identifier

    descriptor = KeySchemaDescriptor(
        record_name=record_name,
        partition_fields=partition_specs,
        clustering_fields=clustering_specs,
        all_fields=all_specs,
    )
    logger.debug(
        f"Described {record_name}: partition={descriptor.partition_columns}, "
        f"clustering={descriptor.clustering_columns}, columns={len(all_specs)}"
    )
    return descriptor


# ============================================================================
# Metadata provider for dataclasses and pydantic models
# ============================================================================

_VALUE_KINDS: dict[type, str] = {
    str: "text",
    bool: "boolean",
    int: "bigint",
    float: "double",
    decimal.Decimal: "decimal",
    uuid.UUID: "uuid",
    datetime.datetime: "timestamp",
    datetime.date: "date",
    datetime.time: "time",
    bytes: "blob",
}


def _value_kind_for(hint: Any) -> str:
    """Best-effort CQL type for a field's type hint."""
    # Optional[X] / X | None
    if get_origin(hint) in (Union, types.UnionType):
        args = [a for a in get_args(hint) if a is not type(None)]
        if len(args) == 1:
            hint = args[0]
    return _VALUE_KINDS.get(hint, "text")


def _declared_fields(record_type: type) -> dict[str, Any]:
    """Field names in declaration order, mapped to their type hints."""
    if dataclasses.is_dataclass(record_type):
        hints = get_type_hints(record_type)
        return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(record_type)}
    model_fields = getattr(record_type, "model_fields", None)
    if model_fields is not None:
        return {name: info.annotation for name, info in model_fields.items()}
    raise SchemaError(
        "record type must be a dataclass or a pydantic model; "
        "declare its fields with FieldMetadata instead",
        record_type=getattr(record_type, "__name__", str(record_type))
    )


def metadata_for(
    record_type: type,
    *,
    partition_key: Sequence[str],
    clustering_key: Sequence[str] = (),
    value_kinds: Mapping[str, str] | None = None,
    column_names: Mapping[str, str] | None = None,
) -> RecordTypeMetadata:
    """
    Generate field metadata for a dataclass or pydantic model.

    Reads the declared fields once; the result is plain data that can be
    passed to :func:`describe`.

    Args:
        record_type: Dataclass or pydantic model class
        partition_key: Partition key field names, in key order
        clustering_key: Clustering key field names, in key order
        value_kinds: CQL type overrides keyed by field name
        column_names: Column name overrides keyed by field name

    Example:
        metadata = metadata_for(
            Person,
            partition_key=["country"],
            clustering_key=["first_name", "last_name", "id"],
        )
    """
    declared = _declared_fields(record_type)
    value_kinds = value_kinds or {}
    column_names = column_names or {}
    name = record_type.__name__

    for key_field in (*partition_key, *clustering_key):
        if key_field not in declared:
            raise SchemaError(f"key field '{key_field}' is not declared on the record type", record_type=name)

    partition_positions = {f: i for i, f in enumerate(partition_key)}
    clustering_positions = {f: i for i, f in enumerate(clustering_key)}

    fields = []
    for identifier in declared:
        if identifier in partition_positions:
            role, position = FieldRole.PARTITION, partition_positions[identifier]
        elif identifier in clustering_positions:
            role, position = FieldRole.CLUSTERING, clustering_positions[identifier]
        else:
            role, position = FieldRole.REGULAR, None
        fields.append(FieldMetadata(
            identifier=identifier,
            role=role,
            position=position,
            value_kind=value_kinds.get(identifier) or _value_kind_for(declared[identifier]),
            column_name=column_names.get(identifier),
        ))

    return RecordTypeMetadata(record_type=record_type, fields=tuple(fields))


def fields_of(*fields: FieldMetadata, record_type: type | None = None) -> RecordTypeMetadata:
    """Convenience constructor for hand-written metadata."""
    return RecordTypeMetadata(record_type=record_type, fields=tuple(fields))
