"""DynamoDB schema definitions and shard layout key builders."""

from typing import Any

from .exceptions import ValidationError
from .models import (
    DEFAULT_FAMILY,
    DocumentLocation,
    validate_family_name,
    validate_parent_path,
)

# Key prefixes
PARENT_PREFIX = "PARENT#"

# Sort key prefixes
SK_SHARD = "#SHARD#"
SK_FAMILY = "#FAMILY#"

# Counter fields are stored as top-level attributes so ADD can target them
FIELD_PREFIX = "C#"

# Zero-padded so shards sort in index order within a family
SHARD_INDEX_WIDTH = 4

# Descriptor record attributes
ATTR_SHARD_COUNT = "shard_count"
ATTR_FIELD_NAMES = "field_names"


def pk_parent(parent_path: str) -> str:
    """Build partition key for a parent record."""
    return f"{PARENT_PREFIX}{parent_path}"


def sk_shard(family: str, index: int) -> str:
    """Build sort key for a shard."""
    return f"{SK_SHARD}{family}#{index:0{SHARD_INDEX_WIDTH}d}"


def sk_shard_prefix(family: str) -> str:
    """Build sort key prefix for querying all shards of a family."""
    return f"{SK_SHARD}{family}#"


def sk_family(family: str) -> str:
    """Build sort key for a family descriptor."""
    return f"{SK_FAMILY}{family}"


def field_attr(field: str) -> str:
    """Build the attribute name holding a counter field."""
    return f"{FIELD_PREFIX}{field}"


def parse_field_attr(attr: str) -> str | None:
    """Return the counter field name for an attribute, or None if not a counter attribute."""
    if not attr.startswith(FIELD_PREFIX):
        return None
    return attr[len(FIELD_PREFIX) :]


def shard_location(
    parent_path: str,
    index: int,
    family: str = DEFAULT_FAMILY,
    shard_count: int | None = None,
) -> DocumentLocation:
    """
    Map (parent path, shard index) to a shard record location.

    Pure and stable: the reader must find every shard a writer ever
    touched, so the same inputs always yield the same location.

    Args:
        parent_path: Path of the parent record (e.g., "posts/p1")
        index: Shard index
        family: Counter family name
        shard_count: If given, index must be below it

    Raises:
        ValidationError: If the index is out of range or inputs are invalid
    """
    validate_parent_path(parent_path)
    validate_family_name(family)
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValidationError("index", index, "Shard index must be a non-negative integer")
    if shard_count is not None and index >= shard_count:
        raise ValidationError("index", index, f"Shard index must be below {shard_count}")
    return DocumentLocation(
        parent_path=parent_path,
        family=family,
        index=index,
        pk=pk_parent(parent_path),
        sk=sk_shard(family, index),
    )


def family_location(parent_path: str, family: str = DEFAULT_FAMILY) -> DocumentLocation:
    """Map a parent path to its family descriptor location."""
    validate_parent_path(parent_path)
    validate_family_name(family)
    return DocumentLocation(
        parent_path=parent_path,
        family=family,
        index=None,
        pk=pk_parent(parent_path),
        sk=sk_family(family),
    )


def parse_shard_sk(sk: str) -> tuple[str, int]:
    """Parse family and shard index from a shard sort key."""
    # SK format: #SHARD#{family}#{index}
    if not sk.startswith(SK_SHARD):
        raise ValueError(f"Invalid shard SK: {sk}")
    parts = sk[len(SK_SHARD) :].rsplit("#", 1)
    if len(parts) != 2 or not parts[1].isdigit():
        raise ValueError(f"Invalid shard SK format: {sk}")
    return parts[0], int(parts[1])


def location_from_keys(pk: str, sk: str) -> DocumentLocation:
    """Rebuild a shard location from stored keys."""
    if not pk.startswith(PARENT_PREFIX):
        raise ValueError(f"Invalid parent PK: {pk}")
    family, index = parse_shard_sk(sk)
    return DocumentLocation(
        parent_path=pk[len(PARENT_PREFIX) :],
        family=family,
        index=index,
        pk=pk,
        sk=sk,
    )


def get_table_definition(table_name: str) -> dict[str, Any]:
    """
    Get the DynamoDB table definition for CreateTable.

    Returns a dictionary suitable for boto3 create_table().
    """
    return {
        "TableName": table_name,
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        "KeySchema": [
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
    }
