"""Tests for the DynamoDB repository."""

import pytest

from loop_counters import schema
from loop_counters.counter import ShardedCounter
from loop_counters.exceptions import (
    BatchTooLargeError,
    DocumentExistsError,
    DocumentNotFoundError,
    ValidationError,
)
from loop_counters.models import CounterFamily
from loop_counters.repository import MAX_TRANSACTION_ITEMS, Repository
from loop_counters.store_protocol import DocumentStoreProtocol, WriteMode

PARENT = "posts/p1"


class TestRepositoryBasics:
    """Tests that need no table."""

    def test_implements_protocol(self) -> None:
        assert isinstance(Repository("test-counters"), DocumentStoreProtocol)

    def test_invalid_table_name(self) -> None:
        with pytest.raises(ValidationError):
            Repository("bad name")

    def test_capabilities(self) -> None:
        caps = Repository("test-counters").capabilities
        assert caps.supports_atomic_upsert is True
        assert caps.supports_conditional_create is True
        assert caps.atomic_batches is True
        assert caps.max_batch_size == MAX_TRANSACTION_ITEMS

    def test_build_item(self) -> None:
        repo = Repository("test-counters")
        item = repo.build_item(schema.shard_location(PARENT, 2), {"likes": 3, "title": "x"})
        assert item == {
            "PK": {"S": "PARENT#posts/p1"},
            "SK": {"S": "#SHARD#shards#0002"},
            "parent_path": {"S": PARENT},
            "family": {"S": "shards"},
            "shard_index": {"N": "2"},
            "C#likes": {"N": "3"},
            "C#title": {"S": "x"},
        }

    def test_build_descriptor_item(self) -> None:
        repo = Repository("test-counters")
        item = repo.build_item(
            schema.family_location(PARENT), {"shard_count": 5, "field_names": ["likes"]}
        )
        assert "shard_index" not in item
        assert item["C#shard_count"] == {"N": "5"}
        assert item["C#field_names"] == {"L": [{"S": "likes"}]}

    def test_value_serialization_roundtrip(self) -> None:
        repo = Repository("test-counters")
        value = {"n": 1, "f": 1.5, "b": True, "s": "x", "l": [1, "a"], "none": None}
        assert repo._deserialize_value(repo._serialize_value(value)) == value


class TestRepositoryDocuments:
    """Single-document operations against moto."""

    async def test_read_missing(self, repo: Repository) -> None:
        assert await repo.read(schema.shard_location(PARENT, 0)) is None

    async def test_write_and_read(self, repo: Repository) -> None:
        location = schema.shard_location(PARENT, 0)
        await repo.write(location, {"likes": 1, "views": 0})

        record = await repo.read(location)
        assert record is not None
        assert record.location == location
        assert record.fields == {"likes": 1, "views": 0}

    async def test_create_fails_if_exists(self, repo: Repository) -> None:
        location = schema.shard_location(PARENT, 0)
        await repo.write(location, {"likes": 1}, mode=WriteMode.CREATE)

        with pytest.raises(DocumentExistsError):
            await repo.write(location, {"likes": 1}, mode=WriteMode.CREATE)

        record = await repo.read(location)
        assert record is not None
        assert record.fields == {"likes": 1}

    async def test_increment_creates_when_absent(self, repo: Repository) -> None:
        location = schema.shard_location(PARENT, 4)
        await repo.increment_field(location, "likes", 3, create_if_absent=True)
        await repo.increment_field(location, "likes", -1, create_if_absent=True)

        record = await repo.read(location)
        assert record is not None
        assert record.fields == {"likes": 2}

    async def test_increment_missing_field_on_existing(self, repo: Repository) -> None:
        location = schema.shard_location(PARENT, 0)
        await repo.write(location, {"likes": 5})

        await repo.increment_field(location, "views", 2)

        record = await repo.read(location)
        assert record is not None
        assert record.fields == {"likes": 5, "views": 2}

    async def test_increment_missing_document_raises(self, repo: Repository) -> None:
        with pytest.raises(DocumentNotFoundError):
            await repo.increment_field(schema.shard_location(PARENT, 0), "likes", 1)

    async def test_upserted_shard_is_queryable(self, repo: Repository) -> None:
        location = schema.shard_location(PARENT, 7)
        await repo.increment_field(location, "likes", 1, create_if_absent=True)

        records = await repo.query(PARENT, "shards")
        assert [r.index for r in records] == [7]


class TestRepositoryBatchAndQuery:
    """Batch writes and queries against moto."""

    async def test_batch_commit(self, repo: Repository) -> None:
        batch = repo.batch()
        for i in range(3):
            batch.set(schema.shard_location(PARENT, i), {"likes": 0})
        batch.set(schema.family_location(PARENT), {"shard_count": 3})
        await batch.commit()

        records = await repo.query(PARENT, "shards")
        assert sorted(r.index for r in records) == [0, 1, 2]
        assert all(r.fields == {"likes": 0} for r in records)

    async def test_empty_batch_commit(self, repo: Repository) -> None:
        await repo.batch().commit()  # No exception

    async def test_batch_too_large(self, repo: Repository) -> None:
        batch = repo.batch()
        for i in range(MAX_TRANSACTION_ITEMS + 1):
            batch.set(schema.shard_location(f"posts/p{i}", 0), {"likes": 0})

        with pytest.raises(BatchTooLargeError):
            await batch.commit()

    async def test_query_excludes_other_parents_and_families(self, repo: Repository) -> None:
        await repo.write(schema.shard_location(PARENT, 0), {"likes": 1})
        await repo.write(schema.shard_location(PARENT, 0, family="views"), {"views": 1})
        await repo.write(schema.shard_location("posts/p10", 0), {"likes": 1})
        await repo.write(schema.family_location(PARENT), {"shard_count": 10})

        records = await repo.query(PARENT, "shards")
        assert [r.location for r in records] == [schema.shard_location(PARENT, 0)]

    async def test_query_empty(self, repo: Repository) -> None:
        assert await repo.query(PARENT, "shards") == []


class TestCounterOnDynamoDB:
    """End-to-end counter behavior against moto."""

    async def test_increments_sum(self, dynamo_counter: ShardedCounter) -> None:
        for _ in range(25):
            await dynamo_counter.increment_counter(PARENT, "likes")
        assert await dynamo_counter.get_counter_value(PARENT, "likes") == 25

    async def test_initialize_then_increment(self, dynamo_counter: ShardedCounter) -> None:
        await dynamo_counter.initialize_counters(PARENT, ["likes", "shares"])
        await dynamo_counter.increment_counter(PARENT, "shares", 3)

        assert await dynamo_counter.get_all_counter_values(PARENT) == {"likes": 0, "shares": 3}
        assert len(await dynamo_counter.get_shards(PARENT)) == 10

        descriptor = await dynamo_counter.get_descriptor(PARENT)
        assert descriptor is not None
        assert descriptor.shard_count == 10
        assert descriptor.field_names == ("likes", "shares")

    async def test_stored_shard_count_followed(self, repo: Repository) -> None:
        init = ShardedCounter(repo, family=CounterFamily(shard_count=3))
        await init.initialize_counters(PARENT, ["likes"])

        writer = ShardedCounter(repo, family=CounterFamily(shard_count=20))
        for _ in range(30):
            assert await writer.increment_counter(PARENT, "likes") < 3

        assert len(await writer.get_shards(PARENT)) == 3
        assert await writer.get_counter_value(PARENT, "likes") == 30

    async def test_read_then_write_strategy(self, repo: Repository) -> None:
        from loop_counters.counter import WriteStrategy

        counter = ShardedCounter(repo, write_strategy=WriteStrategy.READ_THEN_WRITE)
        for _ in range(15):
            await counter.increment_counter(PARENT, "likes")
        assert await counter.get_counter_value(PARENT, "likes") == 15
