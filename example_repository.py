"""
Example usage of AsyncRepository.

Stores people partitioned by country and clustered by name, then reads
them back by full key and by partition.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass

from vertector_scyllarepo import (
    AsyncRepository,
    ScyllaDBExecutor,
    StructuredFormatter,
    load_setup_script,
    metadata_for,
)


@dataclass
class Person:
    country: str
    first_name: str
    last_name: str
    id: uuid.UUID
    age: int
    profession: str
    salary: int


async def main():
    """Demonstrate AsyncRepository usage."""

    # JSON log lines tagged with the table and repository operation
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.getLogger("vertector_scyllarepo").addHandler(handler)
    logging.getLogger("vertector_scyllarepo").setLevel(logging.INFO)

    metadata = metadata_for(
        Person,
        partition_key=["country"],
        clustering_key=["first_name", "last_name", "id"],
    )

    async with ScyllaDBExecutor.from_contact_points(["127.0.0.1"], keyspace="people") as executor:
        # Creates the keyspace and table if needed
        await executor.run_setup_script(load_setup_script("schema/people.cql"))

        people = AsyncRepository(executor, metadata, table="people_by_country")

        print("=== Example 1: Save and find by full key ===\n")

        bob = Person("UK", "Bob", "Bobbington", uuid.uuid4(), 50, "Software Developer", 50_000)
        await people.save(bob)
        print("✓ Saved Bob")

        found = await people.find("UK", "Bob", "Bobbington", bob.id)
        print(f"✓ Retrieved: {found}")

        print("\n=== Example 2: Update via save ===\n")

        bob.salary = 55_000
        await people.save(bob)
        found = await people.find("UK", "Bob", "Bobbington", bob.id)
        print(f"✓ Salary is now {found.salary}")

        print("\n=== Example 3: Partition scans ===\n")

        await people.save_all([
            Person("UK", "Alice", "Archer", uuid.uuid4(), 34, "Engineer", 60_000),
            Person("UK", "Bob", "Barker", uuid.uuid4(), 41, "Presenter", 80_000),
            Person("FR", "Claire", "Dubois", uuid.uuid4(), 29, "Designer", 45_000),
        ])

        uk = await people.find_by_partition("UK")
        print(f"✓ UK has {len(uk)} people: {[p.first_name for p in uk]}")

        bobs = await people.find_by_partition("UK", clustering=["Bob"])
        print(f"✓ UK Bobs: {[p.last_name for p in bobs]}")

        everyone = await people.find_all()
        print(f"✓ Table holds {len(everyone)} people")

        print("\n=== Example 4: Delete ===\n")

        await people.delete("UK", "Bob", "Bobbington", bob.id)
        print(f"✓ Bob exists after delete: {await people.exists('UK', 'Bob', 'Bobbington', bob.id)}")

        print("\n=== Metrics ===\n")
        stats = executor.get_metrics()
        print(f"✓ {stats['total_queries']} statements, avg {stats['avg_latency_ms']:.2f}ms")
        print(executor.export_metrics())


if __name__ == "__main__":
    asyncio.run(main())
