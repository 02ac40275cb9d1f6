"""
Tests for key schema descriptors and metadata generation.
"""

import datetime
import uuid
from dataclasses import dataclass
from typing import Optional

import pytest
from pydantic import BaseModel

from vertector_scyllarepo import SchemaError
from vertector_scyllarepo.naming import CAMEL_CASE, SNAKE_CASE, NamingStrategy
from vertector_scyllarepo.schema import (
    FieldMetadata,
    FieldRole,
    describe,
    fields_of,
    metadata_for,
    normalize_column_name,
)

from conftest import Person


@dataclass
class Reading:
    sensorId: str
    readingDate: datetime.date
    takenAt: datetime.datetime
    value: float
    note: Optional[str] = None


class Order(BaseModel):
    customer_id: uuid.UUID
    order_id: uuid.UUID
    total: int


@pytest.mark.unit
class TestDescribe:
    """Test descriptor construction and validation."""

    def test_people_layout(self, person_metadata):
        descriptor = describe(person_metadata)

        assert descriptor.record_name == "Person"
        assert descriptor.partition_columns == ("country",)
        assert descriptor.clustering_columns == ("first_name", "last_name", "id")
        assert descriptor.key_arity == 4
        assert descriptor.column_names == (
            "country", "first_name", "last_name", "id", "age", "profession", "salary",
        )

    def test_clustering_ordered_by_position_not_declaration(self):
        metadata = fields_of(
            FieldMetadata("b", FieldRole.CLUSTERING, position=1),
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("a", FieldRole.CLUSTERING, position=0),
            FieldMetadata("payload"),
        )
        descriptor = describe(metadata)

        assert descriptor.clustering_columns == ("a", "b")
        assert descriptor.column_names == ("pk", "a", "b", "payload")

    def test_composite_partition_key_in_position_order(self):
        metadata = fields_of(
            FieldMetadata("day", FieldRole.PARTITION, position=1),
            FieldMetadata("tenant", FieldRole.PARTITION, position=0),
        )
        assert describe(metadata).partition_columns == ("tenant", "day")

    def test_no_partition_key(self):
        metadata = fields_of(FieldMetadata("a", FieldRole.CLUSTERING, position=0))
        with pytest.raises(SchemaError) as exc_info:
            describe(metadata)
        assert "partition" in str(exc_info.value)

    def test_duplicate_clustering_position(self):
        metadata = fields_of(
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("a", FieldRole.CLUSTERING, position=0),
            FieldMetadata("b", FieldRole.CLUSTERING, position=0),
        )
        with pytest.raises(SchemaError) as exc_info:
            describe(metadata)
        assert "share position 0" in str(exc_info.value)

    def test_gap_in_clustering_positions(self):
        metadata = fields_of(
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("a", FieldRole.CLUSTERING, position=0),
            FieldMetadata("b", FieldRole.CLUSTERING, position=2),
        )
        with pytest.raises(SchemaError) as exc_info:
            describe(metadata)
        assert "without gaps" in str(exc_info.value)

    def test_clustering_position_required(self):
        metadata = fields_of(
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("a", FieldRole.CLUSTERING),
        )
        with pytest.raises(SchemaError):
            describe(metadata)

    def test_mixed_partition_positions(self):
        metadata = fields_of(
            FieldMetadata("a", FieldRole.PARTITION, position=0),
            FieldMetadata("b", FieldRole.PARTITION),
        )
        with pytest.raises(SchemaError) as exc_info:
            describe(metadata)
        assert "missing a position" in str(exc_info.value)

    def test_negative_position(self):
        metadata = fields_of(FieldMetadata("a", FieldRole.PARTITION, position=-1))
        with pytest.raises(SchemaError):
            describe(metadata)

    def test_duplicate_field(self):
        metadata = fields_of(
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("pk"),
        )
        with pytest.raises(SchemaError):
            describe(metadata)

    def test_column_collision_after_normalization(self):
        """``firstName`` and ``first_name`` land on the same column."""
        metadata = fields_of(
            FieldMetadata("pk", FieldRole.PARTITION),
            FieldMetadata("first_name"),
            FieldMetadata("firstName", column_name="firstName"),
        )
        with pytest.raises(SchemaError) as exc_info:
            describe(metadata)
        assert "both map to column" in str(exc_info.value)

    def test_override_collision(self, person_metadata):
        with pytest.raises(SchemaError):
            describe(person_metadata, overrides={"age": "salary"})

    def test_override_unknown_field(self, person_metadata):
        with pytest.raises(SchemaError) as exc_info:
            describe(person_metadata, overrides={"height": "height_cm"})
        assert "height" in str(exc_info.value)

    def test_override_wins_over_naming(self, person_metadata):
        descriptor = describe(person_metadata, overrides={"id": "person_id"})
        assert descriptor.clustering_columns == ("first_name", "last_name", "person_id")

    def test_empty_override_rejected(self):
        metadata = fields_of(FieldMetadata("country", FieldRole.PARTITION), FieldMetadata("age"))

        with pytest.raises(SchemaError) as exc_info:
            describe(metadata, overrides={"age": ""})
        assert "empty column name" in str(exc_info.value)

    def test_empty_metadata_column_name_rejected(self):
        metadata = fields_of(FieldMetadata("country", FieldRole.PARTITION, column_name=""))

        with pytest.raises(SchemaError):
            describe(metadata)

    def test_naming_strategy_applied(self):
        metadata = metadata_for(Reading, partition_key=["sensorId"], clustering_key=["readingDate", "takenAt"])
        descriptor = describe(metadata, NamingStrategy(CAMEL_CASE, SNAKE_CASE))

        assert descriptor.partition_columns == ("sensor_id",)
        assert descriptor.clustering_columns == ("reading_date", "taken_at")
        assert "note" in descriptor.column_names

    def test_descriptor_is_immutable(self, person_metadata):
        descriptor = describe(person_metadata)
        with pytest.raises(AttributeError):
            descriptor.record_name = "Other"

    def test_unnamed_record_type(self):
        metadata = fields_of(FieldMetadata("pk", FieldRole.PARTITION))
        assert describe(metadata).record_name == "record"


@pytest.mark.unit
class TestMetadataFor:
    """Test metadata generation for dataclasses and pydantic models."""

    def test_dataclass_roles_and_positions(self, person_metadata):
        by_name = {f.identifier: f for f in person_metadata.fields}

        assert person_metadata.record_type is Person
        assert by_name["country"].role is FieldRole.PARTITION
        assert by_name["country"].position == 0
        assert by_name["last_name"].role is FieldRole.CLUSTERING
        assert by_name["last_name"].position == 1
        assert by_name["salary"].role is FieldRole.REGULAR
        assert by_name["salary"].position is None

    def test_value_kinds_inferred(self, person_metadata):
        kinds = {f.identifier: f.value_kind for f in person_metadata.fields}
        assert kinds["country"] == "text"
        assert kinds["id"] == "uuid"
        assert kinds["age"] == "bigint"

    def test_optional_and_temporal_kinds(self):
        metadata = metadata_for(Reading, partition_key=["sensorId"])
        kinds = {f.identifier: f.value_kind for f in metadata.fields}

        assert kinds["readingDate"] == "date"
        assert kinds["takenAt"] == "timestamp"
        assert kinds["value"] == "double"
        assert kinds["note"] == "text"

    def test_value_kind_override(self):
        metadata = metadata_for(Person, partition_key=["country"], value_kinds={"age": "int"})
        kinds = {f.identifier: f.value_kind for f in metadata.fields}
        assert kinds["age"] == "int"

    def test_pydantic_model(self):
        metadata = metadata_for(Order, partition_key=["customer_id"], clustering_key=["order_id"])
        descriptor = describe(metadata)

        assert descriptor.record_name == "Order"
        assert descriptor.key_arity == 2
        assert descriptor.column_names == ("customer_id", "order_id", "total")

    def test_unknown_key_field(self):
        with pytest.raises(SchemaError) as exc_info:
            metadata_for(Person, partition_key=["region"])
        assert "region" in str(exc_info.value)

    def test_plain_class_rejected(self):
        class Plain:
            pass

        with pytest.raises(SchemaError):
            metadata_for(Plain, partition_key=["x"])


@pytest.mark.unit
def test_normalize_column_name():
    assert normalize_column_name("first_name") == "firstname"
    assert normalize_column_name("FirstName") == "firstname"
    assert normalize_column_name("FIRST-NAME") == "firstname"
