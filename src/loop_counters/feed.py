"""Batched fan-out reads for the followed-producers feed.

"IN" queries accept at most ``IN_QUERY_LIMIT`` values, so reading the latest
posts of every followed producer means splitting the producer IDs into
groups, issuing one query per group, then merging and re-sorting the
results client-side.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

from .exceptions import FeedQueryFailed, ValidationError

logger = logging.getLogger(__name__)

IN_QUERY_LIMIT = 10
DEFAULT_FEED_LIMIT = 5

T = TypeVar("T")
Item = dict[str, Any]


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most ``size``."""
    if size <= 0:
        raise ValidationError("size", size, "Chunk size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def sort_value(item: Item, sort_key: str) -> float:
    """
    Comparable value of an item's timestamp.

    Accepts plain numbers and ``{"seconds": ..., "nanoseconds": ...}``
    timestamp maps; anything else sorts as 0.
    """
    value = item.get(sort_key)
    if isinstance(value, dict):
        seconds = value.get("seconds", 0) or 0
        nanos = value.get("nanoseconds", 0) or 0
        return float(seconds) + float(nanos) / 1e9
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


async def fan_out(
    ids: Iterable[str],
    fetch_batch: Callable[[list[str]], Awaitable[list[Item]]],
    batch_size: int = IN_QUERY_LIMIT,
    limit: int | None = None,
    sort_key: str = "createdAt",
    key: str = "id",
) -> list[Item]:
    """
    Query items for many IDs in batches, then merge and sort newest first.

    Args:
        ids: IDs to query for (duplicates are dropped, order kept)
        fetch_batch: Async callable running one "IN" query for a batch of IDs
        batch_size: Maximum IDs per query
        limit: Maximum number of items returned (None = all)
        sort_key: Item field holding the timestamp
        key: Item field used for de-duplication (items without it are
            all kept)

    Returns:
        Items sorted by ``sort_key`` descending
    """
    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        return []

    batches = chunked(unique_ids, batch_size)
    logger.debug("Fanning out %d ids in %d batches", len(unique_ids), len(batches))
    results = await asyncio.gather(*(fetch_batch(batch) for batch in batches))

    merged: dict[Any, Item] = {}
    keyless: list[Item] = []
    for batch_items in results:
        for item in batch_items:
            item_id = item.get(key)
            if item_id is None:
                keyless.append(item)
            else:
                merged.setdefault(item_id, item)

    items = sorted(
        [*merged.values(), *keyless],
        key=lambda item: sort_value(item, sort_key),
        reverse=True,
    )
    if limit is not None:
        items = items[:limit]
    return items


class FollowedFeed:
    """
    Latest posts from the producers a user follows.

    Args:
        get_following: Async callable returning the IDs a user follows, or
            None if the user does not exist
        fetch_posts: Async callable ``(producer_ids, limit) -> list[dict]``
            running one "IN" query on the posts' owner field
        batch_size: Maximum producer IDs per query
    """

    def __init__(
        self,
        get_following: Callable[[str], Awaitable[list[str] | None]],
        fetch_posts: Callable[[list[str], int], Awaitable[list[Item]]],
        batch_size: int = IN_QUERY_LIMIT,
    ) -> None:
        self._get_following = get_following
        self._fetch_posts = fetch_posts
        self.batch_size = batch_size

    async def get_feed(self, user_id: str, limit: int = DEFAULT_FEED_LIMIT) -> list[Item]:
        """
        Get the newest ``limit`` posts of the producers ``user_id`` follows.

        Raises:
            FeedQueryFailed: If any lookup fails
        """
        try:
            following = await self._get_following(user_id)
            if not following:
                logger.debug("User %s follows nobody", user_id)
                return []

            async def fetch(batch: list[str]) -> list[Item]:
                return await self._fetch_posts(batch, limit)

            return await fan_out(following, fetch, batch_size=self.batch_size, limit=limit)
        except Exception as e:
            logger.warning("Error fetching followed producers feed for %s", user_id, exc_info=True)
            raise FeedQueryFailed(user_id, e) from e
