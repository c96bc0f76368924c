"""Main ShardedCounter implementation."""

import asyncio
import logging
import random
from collections.abc import Iterable
from enum import Enum
from typing import Any

from . import aggregate, schema
from .cache import TTLCache
from .exceptions import (
    AggregationQueryFailed,
    BatchWriteFailed,
    DocumentExistsError,
    ShardReadFailed,
    ShardWriteFailed,
    ValidationError,
)
from .models import (
    MAX_SHARD_COUNT,
    CounterFamily,
    DocumentLocation,
    FamilyDescriptor,
    ShardRecord,
    validate_delta,
    validate_field_name,
    validate_parent_path,
)
from .store_protocol import DocumentStoreProtocol, WriteMode

logger = logging.getLogger(__name__)


class WriteStrategy(Enum):
    """How the writer applies a delta to the chosen shard."""

    UPSERT = "upsert"  # One create-or-increment call, no read
    READ_THEN_WRITE = "read_then_write"  # Read, then create or increment


class ShardedCounter:
    """
    Async sharded counter over a document store.

    Spreads increments of a parent's counters over N shard records chosen
    at random, and sums the shards on read. Writers and readers are
    stateless and never coordinate with each other:

    - Initializer: ``initialize_counters`` (optional, resets to zero)
    - Writer: ``increment_counter``
    - Reader: ``get_counter_value``, ``get_all_counter_values``

    Every operation surfaces store failures as a CounterError subclass
    carrying the original exception; nothing is retried.

    Args:
        store: Document store adapter
        family: Counter family (name and shard count N)
        cache_ttl_seconds: TTL for cached family descriptors (0 = disabled)
        write_strategy: Force a write strategy (default: UPSERT when the store
            supports it, READ_THEN_WRITE otherwise)
        rng: Random source for shard selection
        cache: Cache instance to use instead of a private one
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        family: CounterFamily | None = None,
        cache_ttl_seconds: float = 60,
        write_strategy: WriteStrategy | None = None,
        rng: random.Random | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self.store = store
        self.family = family or CounterFamily()

        supports_upsert = store.capabilities.supports_atomic_upsert
        if write_strategy is None:
            write_strategy = (
                WriteStrategy.UPSERT if supports_upsert else WriteStrategy.READ_THEN_WRITE
            )
        elif write_strategy is WriteStrategy.UPSERT and not supports_upsert:
            raise ValidationError(
                "write_strategy",
                write_strategy.value,
                "Store does not support atomic create-or-increment",
            )
        self.write_strategy = write_strategy

        self._rng = rng or random.Random()
        self._cache = cache if cache is not None else TTLCache(ttl_seconds=cache_ttl_seconds)

    @classmethod
    def for_dynamodb(
        cls,
        table_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        **kwargs: Any,
    ) -> "ShardedCounter":
        """Create a counter backed by a DynamoDB table."""
        from .repository import Repository

        return cls(Repository(table_name, region=region, endpoint_url=endpoint_url), **kwargs)

    async def close(self) -> None:
        """Close the underlying store."""
        await self.store.close()

    async def __aenter__(self) -> "ShardedCounter":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Family descriptor
    # -------------------------------------------------------------------------

    def _cache_key(self, parent_path: str) -> tuple[str, str]:
        return (parent_path, self.family.name)

    async def _read_descriptor(self, parent_path: str) -> FamilyDescriptor | None:
        location = schema.family_location(parent_path, self.family.name)
        record = await self.store.read(location)
        if record is None:
            return None

        shard_count = record.fields.get(schema.ATTR_SHARD_COUNT)
        if (
            isinstance(shard_count, bool)
            or not isinstance(shard_count, int)
            or not 1 <= shard_count <= MAX_SHARD_COUNT
        ):
            logger.warning(
                "Ignoring family descriptor %s with invalid shard count %r",
                location,
                shard_count,
            )
            return None

        field_names = record.fields.get(schema.ATTR_FIELD_NAMES) or []
        return FamilyDescriptor(
            parent_path=parent_path,
            family=self.family.name,
            shard_count=shard_count,
            field_names=tuple(str(name) for name in field_names),
        )

    async def get_descriptor(self, parent_path: str) -> FamilyDescriptor | None:
        """
        Get the stored family descriptor for a parent (cached).

        Returns:
            The descriptor written by ``initialize_counters``, or None

        Raises:
            ShardReadFailed: If the descriptor cannot be read
        """
        validate_parent_path(parent_path)
        try:
            descriptor: FamilyDescriptor | None = await self._cache.get_or_fetch(
                self._cache_key(parent_path),
                lambda: self._read_descriptor(parent_path),
            )
        except Exception as e:
            logger.warning("Error reading family descriptor for %s", parent_path, exc_info=True)
            raise ShardReadFailed(
                "Failed to read family descriptor",
                e,
                parent_path=parent_path,
                family=self.family.name,
            ) from e
        return descriptor

    async def get_shard_count(self, parent_path: str) -> int:
        """
        Get the shard count writers use for a parent.

        The stored descriptor wins over the configured family. A mismatch is
        logged: writing with the configured N would land increments outside
        the shards the family was initialized with.
        """
        descriptor = await self.get_descriptor(parent_path)
        if descriptor is None:
            return self.family.shard_count
        if descriptor.shard_count != self.family.shard_count:
            logger.warning(
                "Shard count mismatch for %s/%s: configured %d, stored %d; using stored",
                parent_path,
                self.family.name,
                self.family.shard_count,
                descriptor.shard_count,
            )
        return descriptor.shard_count

    # -------------------------------------------------------------------------
    # Initializer
    # -------------------------------------------------------------------------

    async def initialize_counters(self, parent_path: str, field_names: Iterable[str]) -> None:
        """
        Create all N shards of a parent with the given fields set to 0.

        Shards and the family descriptor are written in one batch committed
        once, so the store must accept batches of N + 1 writes. Calling this
        again resets every shard to 0, erasing prior increments. An empty
        field list is a successful no-op.

        Args:
            parent_path: Path of the parent record (e.g., "posts/p1")
            field_names: Counter field names to initialize

        Raises:
            ValidationError: If N + 1 writes exceed the store's batch limit
            BatchWriteFailed: If the batch commit fails
        """
        validate_parent_path(parent_path)
        names = list(dict.fromkeys(field_names))
        for name in names:
            validate_field_name(name)

        if not names:
            logger.debug("No counter fields for %s; nothing to initialize", parent_path)
            return

        shard_count = self.family.shard_count
        max_batch_size = self.store.capabilities.max_batch_size
        if max_batch_size is not None and shard_count + 1 > max_batch_size:
            raise ValidationError(
                "shard_count",
                shard_count,
                f"{shard_count} shards plus the family descriptor need a batch of "
                f"{shard_count + 1} writes; the store allows {max_batch_size}",
            )
        if not self.store.capabilities.atomic_batches:
            logger.warning(
                "Store batches are not atomic; initializing %s is best effort",
                parent_path,
            )

        try:
            batch = self.store.batch()
            for index in range(shard_count):
                location = schema.shard_location(
                    parent_path, index, family=self.family.name, shard_count=shard_count
                )
                batch.set(location, {name: 0 for name in names})
            batch.set(
                schema.family_location(parent_path, self.family.name),
                {
                    schema.ATTR_SHARD_COUNT: shard_count,
                    schema.ATTR_FIELD_NAMES: names,
                },
            )
            await batch.commit()
        except Exception as e:
            logger.warning("Error initializing counter shards for %s", parent_path, exc_info=True)
            raise BatchWriteFailed(
                "Failed to initialize counter shards",
                e,
                parent_path=parent_path,
                family=self.family.name,
            ) from e
        finally:
            self._cache.invalidate(self._cache_key(parent_path))

        logger.info(
            "Initialized %d counter shards for %s/%s",
            shard_count,
            parent_path,
            self.family.name,
        )

    # -------------------------------------------------------------------------
    # Writer
    # -------------------------------------------------------------------------

    async def increment_counter(self, parent_path: str, field: str, delta: int = 1) -> int:
        """
        Add ``delta`` to a counter field on a randomly chosen shard.

        The shard is created on first write if it does not exist. Negative
        deltas are applied as-is.

        Args:
            parent_path: Path of the parent record (e.g., "posts/p1")
            field: Counter field name
            delta: Amount to add (default: 1)

        Returns:
            Index of the shard that received the delta

        Raises:
            ShardReadFailed: If the shard (or descriptor) cannot be read
            ShardWriteFailed: If the shard cannot be created or incremented
        """
        validate_parent_path(parent_path)
        validate_field_name(field)
        validate_delta(delta)

        shard_count = await self.get_shard_count(parent_path)
        index = self._rng.randrange(shard_count)
        location = schema.shard_location(
            parent_path, index, family=self.family.name, shard_count=shard_count
        )

        if self.write_strategy is WriteStrategy.UPSERT:
            await self._increment(location, field, delta, create_if_absent=True)
        else:
            await self._read_then_write(location, field, delta)

        logger.debug("Incremented %s on shard %s by %d", field, location, delta)
        return index

    async def _read_then_write(self, location: DocumentLocation, field: str, delta: int) -> None:
        try:
            record = await self.store.read(location)
        except Exception as e:
            logger.warning("Error reading shard %s", location, exc_info=True)
            raise ShardReadFailed(
                "Failed to read shard",
                e,
                parent_path=location.parent_path,
                field=field,
                family=location.family,
            ) from e

        if record is None:
            try:
                await self.store.write(location, {field: delta}, mode=WriteMode.CREATE)
                return
            except DocumentExistsError:
                # Another writer created the shard first; add on top of it
                logger.debug("Shard %s created concurrently; incrementing instead", location)
            except Exception as e:
                logger.warning("Error creating shard %s", location, exc_info=True)
                raise ShardWriteFailed(
                    "Failed to create shard",
                    e,
                    parent_path=location.parent_path,
                    field=field,
                    family=location.family,
                ) from e

        await self._increment(location, field, delta, create_if_absent=False)

    async def _increment(
        self, location: DocumentLocation, field: str, delta: int, create_if_absent: bool
    ) -> None:
        try:
            await self.store.increment_field(
                location, field, delta, create_if_absent=create_if_absent
            )
        except Exception as e:
            logger.warning("Error incrementing shard %s", location, exc_info=True)
            raise ShardWriteFailed(
                "Failed to increment shard",
                e,
                parent_path=location.parent_path,
                field=field,
                family=location.family,
            ) from e

    # -------------------------------------------------------------------------
    # Reader
    # -------------------------------------------------------------------------

    async def get_shards(self, parent_path: str) -> list[ShardRecord]:
        """
        Get every shard record of this family under a parent, by index.

        Raises:
            AggregationQueryFailed: If the shards cannot be enumerated
        """
        validate_parent_path(parent_path)
        try:
            shards = await self.store.query(parent_path, self.family.name)
        except Exception as e:
            logger.warning("Error querying counter shards for %s", parent_path, exc_info=True)
            raise AggregationQueryFailed(
                "Failed to query counter shards",
                e,
                parent_path=parent_path,
                family=self.family.name,
            ) from e
        return sorted(shards, key=lambda shard: shard.index or 0)

    async def get_counter_value(self, parent_path: str, field: str) -> int:
        """
        Get the total of one counter field across all shards.

        Returns 0 when no shards exist. Reflects a point-in-time read of
        each shard; concurrent writes may or may not be included.

        Raises:
            AggregationQueryFailed: If the shards cannot be enumerated
        """
        validate_field_name(field)
        shards = await self.get_shards(parent_path)
        return aggregate.sum_field(shards, field)

    async def get_all_counter_values(self, parent_path: str) -> dict[str, int]:
        """
        Get the totals of every numeric field across all shards.

        Non-numeric fields are ignored.

        Raises:
            AggregationQueryFailed: If the shards cannot be enumerated
        """
        shards = await self.get_shards(parent_path)
        return aggregate.sum_all_fields(shards)


class SyncShardedCounter:
    """
    Synchronous sharded counter.

    Wraps ShardedCounter, running async operations in a private event loop.
    Must not be used from inside a running event loop.
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        family: CounterFamily | None = None,
        cache_ttl_seconds: float = 60,
        write_strategy: WriteStrategy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._counter = ShardedCounter(
            store,
            family=family,
            cache_ttl_seconds=cache_ttl_seconds,
            write_strategy=write_strategy,
            rng=rng,
        )
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def for_dynamodb(
        cls,
        table_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        **kwargs: Any,
    ) -> "SyncShardedCounter":
        """Create a sync counter backed by a DynamoDB table."""
        from .repository import Repository

        return cls(Repository(table_name, region=region, endpoint_url=endpoint_url), **kwargs)

    @property
    def family(self) -> CounterFamily:
        return self._counter.family

    @property
    def store(self) -> DocumentStoreProtocol:
        return self._counter.store

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        """Get or create the private event loop."""
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _run(self, coro: Any) -> Any:
        """Run a coroutine in the event loop."""
        return self._get_loop().run_until_complete(coro)

    def close(self) -> None:
        """Close the underlying store and the event loop."""
        if self._loop is None or self._loop.is_closed():
            return
        try:
            self._run(self._counter.close())
        finally:
            self._loop.close()

    def __enter__(self) -> "SyncShardedCounter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def initialize_counters(self, parent_path: str, field_names: Iterable[str]) -> None:
        """Create all N shards of a parent with the given fields set to 0."""
        self._run(self._counter.initialize_counters(parent_path, field_names))

    def increment_counter(self, parent_path: str, field: str, delta: int = 1) -> int:
        """Add ``delta`` to a counter field on a randomly chosen shard."""
        result: int = self._run(self._counter.increment_counter(parent_path, field, delta))
        return result

    def get_counter_value(self, parent_path: str, field: str) -> int:
        """Get the total of one counter field across all shards."""
        result: int = self._run(self._counter.get_counter_value(parent_path, field))
        return result

    def get_all_counter_values(self, parent_path: str) -> dict[str, int]:
        """Get the totals of every numeric field across all shards."""
        result: dict[str, int] = self._run(self._counter.get_all_counter_values(parent_path))
        return result

    def get_shards(self, parent_path: str) -> list[ShardRecord]:
        """Get every shard record of this family under a parent."""
        result: list[ShardRecord] = self._run(self._counter.get_shards(parent_path))
        return result

    def get_shard_count(self, parent_path: str) -> int:
        """Get the shard count writers use for a parent."""
        result: int = self._run(self._counter.get_shard_count(parent_path))
        return result
