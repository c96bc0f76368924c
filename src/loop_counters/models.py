"""Core models for loop-counters."""

import re
from dataclasses import dataclass, field
from typing import Any

from .exceptions import ValidationError

DEFAULT_FAMILY = "shards"
"""Default counter family (the shard subcollection name under a parent)."""

DEFAULT_SHARD_COUNT = 10

MAX_SHARD_COUNT = 99
"""Upper bound on N: all shards plus the descriptor must fit in one transaction (100 items)."""

MAX_PARENT_PATH_LENGTH = 1024
MAX_FIELD_NAME_LENGTH = 255

# Family names end up inside sort keys, so '#' is not allowed
FAMILY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


def validate_parent_path(parent_path: str) -> None:
    """
    Validate a parent record path such as ``posts/p1``.

    Raises:
        ValidationError: If the path is empty, too long, or malformed
    """
    if not isinstance(parent_path, str) or not parent_path:
        raise ValidationError("parent_path", parent_path, "Parent path cannot be empty")
    if len(parent_path) > MAX_PARENT_PATH_LENGTH:
        raise ValidationError(
            "parent_path",
            parent_path,
            f"Exceeds {MAX_PARENT_PATH_LENGTH} character limit",
        )
    if parent_path.startswith("/") or parent_path.endswith("/"):
        raise ValidationError(
            "parent_path", parent_path, "Must not start or end with '/' (e.g., 'posts/p1')"
        )
    if "//" in parent_path:
        raise ValidationError("parent_path", parent_path, "Contains an empty path segment")


def validate_field_name(name: str) -> None:
    """
    Validate a counter field name.

    Raises:
        ValidationError: If the name is not a non-empty string
    """
    if not isinstance(name, str) or not name:
        raise ValidationError("field", name, "Field name must be a non-empty string")
    if len(name) > MAX_FIELD_NAME_LENGTH:
        raise ValidationError(
            "field", name, f"Exceeds {MAX_FIELD_NAME_LENGTH} character limit"
        )


def validate_family_name(name: str) -> None:
    """Validate a counter family name."""
    if not isinstance(name, str) or not name:
        raise ValidationError("family", name, "Family name cannot be empty")
    if not FAMILY_PATTERN.match(name):
        raise ValidationError(
            "family",
            name,
            "Must start with a letter and contain only letters, digits, '-' and '_'",
        )


def validate_delta(delta: int) -> None:
    """Validate an increment delta (any int; bools are rejected)."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta", delta, "Delta must be an integer")


@dataclass(frozen=True)
class CounterFamily:
    """
    Configuration of a group of counters sharing one shard layout.

    The same family (name and shard count) must be used to initialize,
    write, and read the counters of a parent. The initializer persists the
    shard count in a descriptor record so writers configured with a
    different count can detect and follow the stored one.

    Attributes:
        name: Family name, used as the shard collection under the parent
        shard_count: Number of shards N writes are spread over
    """

    name: str = DEFAULT_FAMILY
    shard_count: int = DEFAULT_SHARD_COUNT

    def __post_init__(self) -> None:
        validate_family_name(self.name)
        if isinstance(self.shard_count, bool) or not isinstance(self.shard_count, int):
            raise ValidationError("shard_count", self.shard_count, "Must be an integer")
        if not 1 <= self.shard_count <= MAX_SHARD_COUNT:
            raise ValidationError(
                "shard_count",
                self.shard_count,
                f"Must be between 1 and {MAX_SHARD_COUNT}",
            )

    def with_shard_count(self, shard_count: int) -> "CounterFamily":
        """Return a copy of this family with a different shard count."""
        return CounterFamily(name=self.name, shard_count=shard_count)


@dataclass(frozen=True)
class DocumentLocation:
    """
    Location of a shard or descriptor record in the document store.

    Built by the shard layout functions in ``schema``; never constructed by
    hand elsewhere.

    Attributes:
        parent_path: Path of the owning parent record
        family: Counter family name
        index: Shard index, or None for the family descriptor
        pk: Partition key
        sk: Sort key
    """

    parent_path: str
    family: str
    index: int | None
    pk: str
    sk: str

    @property
    def is_shard(self) -> bool:
        """True for shard records, False for the family descriptor."""
        return self.index is not None

    def __str__(self) -> str:
        if self.index is None:
            return f"{self.parent_path}/{self.family}"
        return f"{self.parent_path}/{self.family}/{self.index}"


@dataclass
class ShardRecord:
    """A record read from the document store: its location and field values."""

    location: DocumentLocation
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def index(self) -> int | None:
        return self.location.index


@dataclass(frozen=True)
class FamilyDescriptor:
    """Persisted description of a parent's counter family."""

    parent_path: str
    family: str
    shard_count: int
    field_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class StoreCapabilities:
    """
    Declares which primitives a document store adapter provides.

    Attributes:
        supports_atomic_upsert: ``increment_field(..., create_if_absent=True)``
            is a single server-side "create if absent, else add" operation
        supports_conditional_create: ``write(..., mode=WriteMode.CREATE)``
            fails with DocumentExistsError instead of overwriting
        atomic_batches: ``batch().commit()`` is all-or-nothing
        max_batch_size: Maximum number of writes per batch (None = unbounded)
    """

    supports_atomic_upsert: bool = False
    supports_conditional_create: bool = True
    atomic_batches: bool = True
    max_batch_size: int | None = None
