"""
Pytest configuration and fixtures for repository tests.

Provides:
- An in-memory statement executor for unit tests
- Record types and metadata for the people example
- A ScyllaDB executor for integration tests (skipped without a cluster)
"""

import os
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Iterable

import pytest
import pytest_asyncio
from dotenv import load_dotenv

from vertector_scyllarepo import (
    AsyncRepository,
    PointDelete,
    SelectAll,
    SelectByPartition,
    StoreConnectionError,
    Upsert,
    metadata_for,
)

# Load environment variables for tests
load_dotenv()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require ScyllaDB)"
    )


# ============================================================================
# In-memory executor
# ============================================================================

class InMemoryExecutor:
    """
    Statement executor backed by a dict, for unit tests.

    Rows are keyed by their composite key values. Partition and full-table
    reads return rows ordered by clustering key, like a single-node store.
    """

    def __init__(self, partition_columns: tuple[str, ...], clustering_columns: tuple[str, ...] = ()):
        self.partition_columns = partition_columns
        self.clustering_columns = clustering_columns
        self.rows: dict[tuple, dict[str, Any]] = {}
        self.executed: list = []
        self.setup_statements: list[str] = []
        self.fail_with: Exception | None = None

    def _key(self, row: dict[str, Any]) -> tuple:
        return tuple(row[c] for c in self.partition_columns + self.clustering_columns)

    def _ordered(self, rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        return sorted(rows, key=lambda r: tuple(str(r[c]) for c in self.partition_columns)
                      + tuple(r[c] for c in self.clustering_columns))

    async def execute(self, statement) -> list[dict[str, Any]]:
        self.executed.append(statement)
        if self.fail_with is not None:
            raise self.fail_with

        if isinstance(statement, Upsert):
            row = dict(statement.values)
            self.rows[self._key(row)] = row
            return []

        if isinstance(statement, PointDelete):
            self.rows.pop(tuple(value for _, value in statement.key), None)
            return []

        if isinstance(statement, SelectByPartition):
            matches = [
                row for row in self.rows.values()
                if all(row.get(column) == value for column, value in statement.predicates)
            ]
            rows = self._ordered(matches)
        elif isinstance(statement, SelectAll):
            rows = self._ordered(self.rows.values())
        else:
            raise TypeError(f"Unsupported statement {statement!r}")

        rows = [{c: row.get(c) for c in statement.columns} for row in rows]
        if statement.limit is not None:
            rows = rows[:statement.limit]
        return rows

    async def run_setup_script(self, statements: Iterable[str]) -> None:
        for statement in statements:
            if statement.strip():
                self.setup_statements.append(statement.strip())


# ============================================================================
# Record types
# ============================================================================

@dataclass
class Person:
    country: str
    first_name: str
    last_name: str
    id: uuid.UUID
    age: int
    profession: str
    salary: int


@pytest.fixture
def person_metadata():
    return metadata_for(
        Person,
        partition_key=["country"],
        clustering_key=["first_name", "last_name", "id"],
    )


@pytest.fixture
def executor():
    return InMemoryExecutor(("country",), ("first_name", "last_name", "id"))


@pytest.fixture
def people(executor, person_metadata):
    """Repository over the in-memory executor."""
    return AsyncRepository(executor, person_metadata, table="people_by_country")


@pytest.fixture
def bob():
    return Person(
        country="UK",
        first_name="Bob",
        last_name="Bobbington",
        id=uuid.uuid4(),
        age=50,
        profession="Software Developer",
        salary=50_000,
    )


@pytest.fixture
def sample_people():
    """People spread over two partitions."""
    return [
        Person("UK", "Alice", "Archer", uuid.uuid4(), 34, "Engineer", 60_000),
        Person("UK", "Bob", "Barker", uuid.uuid4(), 41, "Presenter", 80_000),
        Person("UK", "Bob", "Bobbington", uuid.uuid4(), 50, "Software Developer", 50_000),
        Person("FR", "Claire", "Dubois", uuid.uuid4(), 29, "Designer", 45_000),
    ]


# ============================================================================
# Integration fixtures
# ============================================================================

@pytest_asyncio.fixture
async def scylla_executor():
    """
    Provide a ScyllaDB executor for integration tests.

    Assumes ScyllaDB is running on SCYLLADB_CONTACT_POINTS (default
    localhost:9042); skips the test otherwise. The test keyspace is dropped
    afterwards.
    """
    from vertector_scyllarepo import ScyllaDBExecutor

    contact_points = os.getenv("SCYLLADB_CONTACT_POINTS", "127.0.0.1").split(",")
    keyspace = "test_repository"

    async with AsyncExitStack() as stack:
        try:
            executor = await stack.enter_async_context(
                ScyllaDBExecutor.from_contact_points(contact_points, keyspace=keyspace)
            )
        except StoreConnectionError:
            pytest.skip("ScyllaDB is not reachable")

        await executor.run_setup_script([
            f"CREATE KEYSPACE IF NOT EXISTS {keyspace} WITH replication = "
            "{'class': 'SimpleStrategy', 'replication_factor': 1}",
            f"""CREATE TABLE IF NOT EXISTS {keyspace}.people_by_country (
                country text,
                first_name text,
                last_name text,
                id uuid,
                age bigint,
                profession text,
                salary bigint,
                PRIMARY KEY ((country), first_name, last_name, id)
            )""",
        ])

        yield executor

        # Cleanup: Drop test keyspace
        await executor.execute_cql(f"DROP KEYSPACE IF EXISTS {keyspace}")
