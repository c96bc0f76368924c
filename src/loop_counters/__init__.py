"""
loop-counters: Sharded aggregate counters over a document store.

This library spreads increments of hot counters (likes, comments, views)
over N shard records so that concurrent writers rarely touch the same
document:
- Random shard selection on every write
- Atomic create-or-increment where the store supports it
- Read-side aggregation over every shard found
- Family descriptor records pinning the shard count per parent
- Pluggable backends via DocumentStoreProtocol

Example:
    from loop_counters import CounterFamily, ShardedCounter

    counter = ShardedCounter.for_dynamodb(
        "loop-counters",
        region="us-east-1",
        family=CounterFamily(shard_count=10),
    )

    async with counter:
        await counter.initialize_counters("posts/p1", ["likes", "comments"])
        await counter.increment_counter("posts/p1", "likes")
        likes = await counter.get_counter_value("posts/p1", "likes")
"""

# Repository requires aioboto3 and is imported lazily via __getattr__ below.
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

from .aggregate import sum_all_fields, sum_field
from .cache import MISSING, CacheStats, TTLCache
from .counter import ShardedCounter, SyncShardedCounter, WriteStrategy
from .exceptions import (
    AggregationQueryFailed,
    BatchTooLargeError,
    BatchWriteFailed,
    CounterError,
    DocumentExistsError,
    DocumentNotFoundError,
    FeedQueryFailed,
    LoopCountersError,
    SearchFailed,
    ShardReadFailed,
    ShardWriteFailed,
    StoreError,
    ValidationError,
)
from .feed import FollowedFeed, fan_out
from .memory import InMemoryStore
from .models import (
    DEFAULT_FAMILY,
    DEFAULT_SHARD_COUNT,
    MAX_SHARD_COUNT,
    CounterFamily,
    DocumentLocation,
    FamilyDescriptor,
    ShardRecord,
    StoreCapabilities,
)
from .schema import family_location, shard_location
from .search import FilterProvider, PrefixProvider, UserSearch
from .store_protocol import BatchProtocol, DocumentStoreProtocol, WriteMode

if TYPE_CHECKING:
    from .repository import Repository as Repository

try:
    __version__ = version("loop-counters")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Main classes
    "ShardedCounter",
    "SyncShardedCounter",
    "WriteStrategy",
    "Repository",
    "InMemoryStore",
    "DocumentStoreProtocol",
    "BatchProtocol",
    "WriteMode",
    "TTLCache",
    "CacheStats",
    "MISSING",
    # Models
    "CounterFamily",
    "DocumentLocation",
    "FamilyDescriptor",
    "ShardRecord",
    "StoreCapabilities",
    "DEFAULT_FAMILY",
    "DEFAULT_SHARD_COUNT",
    "MAX_SHARD_COUNT",
    # Shard layout
    "shard_location",
    "family_location",
    # Aggregation
    "sum_field",
    "sum_all_fields",
    # Search and feed
    "UserSearch",
    "PrefixProvider",
    "FilterProvider",
    "FollowedFeed",
    "fan_out",
    # Exceptions - Base
    "LoopCountersError",
    # Exceptions - Categories
    "CounterError",
    "StoreError",
    # Exceptions - Counter
    "BatchWriteFailed",
    "ShardReadFailed",
    "ShardWriteFailed",
    "AggregationQueryFailed",
    # Exceptions - Store
    "DocumentExistsError",
    "DocumentNotFoundError",
    "BatchTooLargeError",
    # Exceptions - Validation
    "ValidationError",
    # Exceptions - Search / Feed
    "SearchFailed",
    "FeedQueryFailed",
]


def __getattr__(name: str) -> type:
    """Lazy import for modules that require aioboto3.

    See Also:
        PEP 562 -- Module __getattr__ and __dir__
    """
    if name == "Repository":
        from .repository import Repository

        return Repository
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
