"""
Shard aggregation.

The value of a sharded counter is the sum of its field over every shard
record that exists for the parent:

- **Missing fields**: A shard without the field contributes 0.
- **Foreign fields**: Only real numbers are summed. Strings, maps, lists,
  booleans, and nulls are skipped so a corrupted or unrelated attribute can
  neither break aggregation nor show up as a counter.
- **Signed values**: Negative deltas are allowed, so individual shards may
  hold negative values; the sum is returned as-is, without clamping.

Key functions:
    is_counter_value: Whether a stored value takes part in aggregation
    sum_field: Total of one field across shards
    sum_all_fields: Totals of every numeric field across shards
"""

from collections.abc import Iterable
from numbers import Real
from typing import Any

from .models import ShardRecord


def is_counter_value(value: Any) -> bool:
    """Return True for int/float values (bool is excluded)."""
    return isinstance(value, Real) and not isinstance(value, bool)


def sum_field(shards: Iterable[ShardRecord], field: str) -> int:
    """
    Sum one field across shards.

    Args:
        shards: Shard records of one parent and family
        field: Counter field name

    Returns:
        The total (0 when there are no shards or no shard has the field)
    """
    total = 0
    for shard in shards:
        value = shard.fields.get(field)
        if is_counter_value(value):
            total += value
    return total


def sum_all_fields(shards: Iterable[ShardRecord]) -> dict[str, int]:
    """
    Sum every numeric field across shards.

    A key appears in the result only if at least one shard holds a numeric
    value for it.
    """
    totals: dict[str, int] = {}
    for shard in shards:
        for field, value in shard.fields.items():
            if is_counter_value(value):
                totals[field] = totals.get(field, 0) + value
    return totals
