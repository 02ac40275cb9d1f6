"""
Tests for AsyncRepository CRUD operations.

Runs against the in-memory executor from conftest.
"""

import dataclasses
from unittest.mock import AsyncMock

import pytest

from vertector_scyllarepo import (
    AsyncRepository,
    ConfigurationError,
    DecodingError,
    SchemaError,
    StoreTimeoutError,
    ValidationError,
)
from vertector_scyllarepo.config import NamingConfig, ScyllaDBRepositoryConfig
from vertector_scyllarepo.repository import default_table_name
from vertector_scyllarepo.schema import FieldMetadata, FieldRole, fields_of
from vertector_scyllarepo.statements import PointDelete, SelectAll, SelectByPartition, Upsert

from conftest import InMemoryExecutor, Person


class DictAccessor:
    """Reads and builds plain dict records."""

    def read(self, record, identifier):
        return record[identifier]

    def build(self, values):
        return dict(values)


@pytest.mark.unit
class TestPeopleByCountry:
    """The people example: partition by country, cluster by name and id."""

    @pytest.mark.asyncio
    async def test_save_then_find(self, people, bob):
        await people.save(bob)

        found = await people.find("UK", "Bob", "Bobbington", bob.id)

        assert found == bob
        assert found is not bob

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self, people, bob):
        assert await people.find("UK", "Bob", "Bobbington", bob.id) is None

    @pytest.mark.asyncio
    async def test_find_partition_only_is_rejected(self, people, executor):
        with pytest.raises(ValidationError):
            await people.find("UK")
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_find_too_many_values(self, people, bob):
        with pytest.raises(ValidationError):
            await people.find("UK", "Bob", "Bobbington", bob.id, 50)

    @pytest.mark.asyncio
    async def test_find_none_key_value(self, people, bob):
        with pytest.raises(ValidationError):
            await people.find("UK", None, "Bobbington", bob.id)

    @pytest.mark.asyncio
    async def test_update_via_save(self, people, bob):
        await people.save(bob)
        updated = dataclasses.replace(bob, salary=60_000, profession="Architect")

        await people.save(updated)

        found = await people.find("UK", "Bob", "Bobbington", bob.id)
        assert found.salary == 60_000
        assert found.profession == "Architect"
        assert len(await people.find_by_partition("UK")) == 1

    @pytest.mark.asyncio
    async def test_save_is_idempotent(self, people, bob):
        await people.save(bob)
        await people.save(bob)

        assert await people.find_all() == [bob]

    @pytest.mark.asyncio
    async def test_save_returns_record(self, people, bob):
        assert await people.save(bob) is bob

    @pytest.mark.asyncio
    async def test_delete_then_find(self, people, bob):
        await people.save(bob)

        await people.delete("UK", "Bob", "Bobbington", bob.id)

        assert await people.find("UK", "Bob", "Bobbington", bob.id) is None
        assert not await people.exists("UK", "Bob", "Bobbington", bob.id)

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, people, bob):
        await people.delete("UK", "Bob", "Bobbington", bob.id)
        assert await people.find_all() == []

    @pytest.mark.asyncio
    async def test_delete_wrong_arity(self, people):
        with pytest.raises(ValidationError):
            await people.delete("UK", "Bob")

    @pytest.mark.asyncio
    async def test_exists(self, people, bob):
        await people.save(bob)
        assert await people.exists("UK", "Bob", "Bobbington", bob.id)


@pytest.mark.unit
class TestPartitionScans:
    """Test find_all and find_by_partition."""

    @pytest.mark.asyncio
    async def test_partition_exclusivity(self, people, sample_people):
        await people.save_all(sample_people)

        uk = await people.find_by_partition("UK")
        fr = await people.find_by_partition("FR")

        assert {p.id for p in uk} == {p.id for p in sample_people if p.country == "UK"}
        assert all(p.country == "UK" for p in uk)
        assert [p.first_name for p in fr] == ["Claire"]

    @pytest.mark.asyncio
    async def test_partition_ordered_by_clustering_key(self, people, sample_people):
        await people.save_all(reversed(sample_people))

        uk = await people.find_by_partition("UK")

        assert [(p.first_name, p.last_name) for p in uk] == [
            ("Alice", "Archer"),
            ("Bob", "Barker"),
            ("Bob", "Bobbington"),
        ]

    @pytest.mark.asyncio
    async def test_clustering_prefix(self, people, sample_people):
        await people.save_all(sample_people)

        bobs = await people.find_by_partition("UK", clustering=["Bob"])
        bobbington = await people.find_by_partition("UK", clustering=["Bob", "Bobbington"])

        assert [p.last_name for p in bobs] == ["Barker", "Bobbington"]
        assert [p.last_name for p in bobbington] == ["Bobbington"]

    @pytest.mark.asyncio
    async def test_empty_partition(self, people, sample_people):
        await people.save_all(sample_people)
        assert await people.find_by_partition("DE") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("clustering", ["Bob", b"Bob"])
    async def test_clustering_string_rejected(self, people, executor, clustering):
        with pytest.raises(ValidationError) as exc_info:
            await people.find_by_partition("UK", clustering=clustering)

        assert exc_info.value.field == "clustering_key"
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_clustering_tuple_accepted(self, people, sample_people):
        await people.save_all(sample_people)

        bobs = await people.find_by_partition("UK", clustering=("Bob",))

        assert [p.last_name for p in bobs] == ["Barker", "Bobbington"]

    @pytest.mark.asyncio
    async def test_partition_wrong_arity(self, people):
        with pytest.raises(ValidationError):
            await people.find_by_partition("UK", "FR")

    @pytest.mark.asyncio
    async def test_find_all(self, people, sample_people):
        await people.save_all(sample_people)

        everyone = await people.find_all()

        assert len(everyone) == len(sample_people)
        assert {p.id for p in everyone} == {p.id for p in sample_people}

    @pytest.mark.asyncio
    async def test_find_all_empty(self, people):
        assert await people.find_all() == []


@pytest.mark.unit
class TestSaveAll:
    """Test bulk saves."""

    @pytest.mark.asyncio
    async def test_invalid_record_writes_nothing(self, people, executor, sample_people):
        sample_people[2].first_name = None

        with pytest.raises(ValidationError):
            await people.save_all(sample_people)

        assert executor.rows == {}
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_one_upsert_per_record(self, people, executor, sample_people):
        await people.save_all(sample_people)
        assert [type(s) for s in executor.executed] == [Upsert] * len(sample_people)


@pytest.mark.unit
class TestStatements:
    """Each operation sends exactly one statement of the expected kind."""

    @pytest.mark.asyncio
    async def test_find_sends_point_select(self, people, executor, bob):
        await people.find("UK", "Bob", "Bobbington", bob.id)

        (statement,) = executor.executed
        assert isinstance(statement, SelectByPartition)
        assert statement.limit == 1
        assert statement.table == "people_by_country"

    @pytest.mark.asyncio
    async def test_find_all_sends_scan(self, people, executor):
        await people.find_all()
        assert isinstance(executor.executed[0], SelectAll)

    @pytest.mark.asyncio
    async def test_delete_sends_point_delete(self, people, executor, bob):
        await people.delete("UK", "Bob", "Bobbington", bob.id)

        (statement,) = executor.executed
        assert isinstance(statement, PointDelete)
        assert dict(statement.key)["id"] == bob.id

    @pytest.mark.asyncio
    async def test_keyspace_on_statements(self, executor, person_metadata):
        people = AsyncRepository(executor, person_metadata, table="people_by_country", keyspace="people")
        await people.find_all()
        assert executor.executed[0].keyspace == "people"


@pytest.mark.unit
class TestErrors:
    """Test error propagation and construction-time validation."""

    @pytest.mark.asyncio
    async def test_executor_errors_propagate_unchanged(self, people, executor):
        error = StoreTimeoutError("Read operation timed out")
        executor.fail_with = error

        with pytest.raises(StoreTimeoutError) as exc_info:
            await people.find_all()

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_row_missing_column(self, person_metadata, bob):
        executor = AsyncMock()
        executor.execute.return_value = [{"country": "UK", "first_name": "Bob"}]
        people = AsyncRepository(executor, person_metadata, table="people_by_country")

        with pytest.raises(DecodingError) as exc_info:
            await people.find("UK", "Bob", "Bobbington", bob.id)

        assert "last_name" in exc_info.value.missing_columns

    def test_schema_error_at_construction(self, executor):
        metadata = fields_of(FieldMetadata("name"), record_type=Person)
        with pytest.raises(SchemaError):
            AsyncRepository(executor, metadata)

    def test_invalid_table_name(self, executor, person_metadata):
        with pytest.raises(ConfigurationError):
            AsyncRepository(executor, person_metadata, table="people; DROP TABLE x")

    def test_invalid_keyspace(self, executor, person_metadata):
        with pytest.raises(ConfigurationError):
            AsyncRepository(executor, person_metadata, keyspace="bad-keyspace")

    def test_table_required_without_record_type(self, executor):
        metadata = fields_of(FieldMetadata("pk", FieldRole.PARTITION))
        with pytest.raises(ValueError):
            AsyncRepository(executor, metadata)


@pytest.mark.unit
class TestConfiguration:
    """Test naming, overrides and table defaults."""

    def test_default_table_name(self):
        assert default_table_name(Person) == "person"

    def test_default_table_used(self, executor, person_metadata):
        people = AsyncRepository(executor, person_metadata)
        assert people.table == "person"

    def test_from_config(self, executor):
        config = ScyllaDBRepositoryConfig(
            contact_points=["127.0.0.1"],
            keyspace="people",
            naming=NamingConfig(field_convention="camel_case"),
            enable_tracing=True,
        )
        metadata = fields_of(
            FieldMetadata("country", FieldRole.PARTITION),
            FieldMetadata("firstName", FieldRole.CLUSTERING, position=0),
        )

        people = AsyncRepository.from_config(executor, metadata, config, table="people_by_country",
                                             accessor=DictAccessor())

        assert people.tracer.enabled is True
        assert people.descriptor.clustering_columns == ("first_name",)

    def test_from_config_explicit_arguments_win(self, executor, person_metadata):
        config = ScyllaDBRepositoryConfig(contact_points=["127.0.0.1"], keyspace="people", enable_tracing=True)

        people = AsyncRepository.from_config(executor, person_metadata, config, enable_tracing=False)

        assert people.tracer.enabled is False
        assert people.table == "person"

    @pytest.mark.asyncio
    async def test_column_overrides(self, person_metadata, bob):
        executor = InMemoryExecutor(("country",), ("first_name", "last_name", "person_id"))
        people = AsyncRepository(executor, person_metadata, column_overrides={"id": "person_id"})

        await people.save(bob)

        (row,) = executor.rows.values()
        assert row["person_id"] == bob.id
        assert "id" not in row
        assert await people.find("UK", "Bob", "Bobbington", bob.id) == bob

    @pytest.mark.asyncio
    async def test_custom_accessor(self):
        metadata = fields_of(
            FieldMetadata("tenant", FieldRole.PARTITION),
            FieldMetadata("sku", FieldRole.CLUSTERING, position=0),
            FieldMetadata("price"),
        )
        executor = InMemoryExecutor(("tenant",), ("sku",))
        products = AsyncRepository(executor, metadata, table="products", accessor=DictAccessor())

        await products.save({"tenant": "acme", "sku": "W-1", "price": 10})

        assert await products.find("acme", "W-1") == {"tenant": "acme", "sku": "W-1", "price": 10}


@pytest.mark.unit
class TestTracing:
    """Operations run inside tracer spans when tracing is enabled."""

    @pytest.mark.asyncio
    async def test_tracing_disabled_by_default(self, people, bob):
        assert people.tracer.enabled is False
        await people.save(bob)

    @pytest.mark.asyncio
    async def test_tracing_enabled(self, executor, person_metadata, bob):
        people = AsyncRepository(executor, person_metadata, table="people_by_country", enable_tracing=True)

        await people.save(bob)

        assert people.tracer.enabled is True
        assert await people.find("UK", "Bob", "Bobbington", bob.id) == bob

    @pytest.mark.asyncio
    async def test_errors_pass_through_span(self, executor, person_metadata):
        people = AsyncRepository(executor, person_metadata, table="people_by_country", enable_tracing=True)
        executor.fail_with = StoreTimeoutError()

        with pytest.raises(StoreTimeoutError):
            await people.find_by_partition("UK")
