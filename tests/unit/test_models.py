"""Tests for models."""

import pytest

from loop_counters.exceptions import ValidationError
from loop_counters.models import (
    DEFAULT_FAMILY,
    DEFAULT_SHARD_COUNT,
    MAX_SHARD_COUNT,
    CounterFamily,
    DocumentLocation,
    ShardRecord,
    StoreCapabilities,
    validate_delta,
    validate_family_name,
    validate_field_name,
    validate_parent_path,
)


class TestValidateParentPath:
    """Tests for validate_parent_path."""

    @pytest.mark.parametrize("path", ["posts/p1", "posts/p1/comments/c1", "p"])
    def test_valid(self, path: str) -> None:
        validate_parent_path(path)  # No exception

    def test_empty_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_parent_path("")
        assert exc_info.value.field == "parent_path"
        assert "cannot be empty" in exc_info.value.reason

    @pytest.mark.parametrize("path", ["/posts/p1", "posts/p1/"])
    def test_surrounding_slash_raises(self, path: str) -> None:
        with pytest.raises(ValidationError):
            validate_parent_path(path)

    def test_empty_segment_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_parent_path("posts//p1")
        assert "empty path segment" in exc_info.value.reason

    def test_too_long_raises(self) -> None:
        with pytest.raises(ValidationError):
            validate_parent_path("p" * 1025)


class TestValidateFieldName:
    """Tests for validate_field_name."""

    def test_valid(self) -> None:
        validate_field_name("likes")

    @pytest.mark.parametrize("name", ["", None, 5])
    def test_invalid(self, name: object) -> None:
        with pytest.raises(ValidationError):
            validate_field_name(name)  # type: ignore[arg-type]

    def test_too_long_raises(self) -> None:
        with pytest.raises(ValidationError):
            validate_field_name("x" * 256)


class TestValidateFamilyName:
    """Tests for validate_family_name."""

    @pytest.mark.parametrize("name", ["shards", "like_shards", "Views-2"])
    def test_valid(self, name: str) -> None:
        validate_family_name(name)

    @pytest.mark.parametrize("name", ["", "2shards", "sha#rds", "sha rds"])
    def test_invalid(self, name: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_family_name(name)
        assert exc_info.value.field == "family"


class TestValidateDelta:
    """Tests for validate_delta."""

    @pytest.mark.parametrize("delta", [1, 0, -1, 10**12])
    def test_integers_accepted(self, delta: int) -> None:
        validate_delta(delta)

    @pytest.mark.parametrize("delta", [True, 1.5, "1", None])
    def test_non_integers_rejected(self, delta: object) -> None:
        with pytest.raises(ValidationError):
            validate_delta(delta)  # type: ignore[arg-type]


class TestCounterFamily:
    """Tests for CounterFamily."""

    def test_defaults(self) -> None:
        family = CounterFamily()
        assert family.name == DEFAULT_FAMILY == "shards"
        assert family.shard_count == DEFAULT_SHARD_COUNT == 10

    @pytest.mark.parametrize("count", [1, 5, MAX_SHARD_COUNT])
    def test_valid_shard_counts(self, count: int) -> None:
        assert CounterFamily(shard_count=count).shard_count == count

    @pytest.mark.parametrize("count", [0, -1, MAX_SHARD_COUNT + 1, True, 2.0])
    def test_invalid_shard_counts(self, count: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            CounterFamily(shard_count=count)  # type: ignore[arg-type]
        assert exc_info.value.field == "shard_count"

    def test_invalid_name(self) -> None:
        with pytest.raises(ValidationError):
            CounterFamily(name="bad#name")

    def test_with_shard_count(self) -> None:
        family = CounterFamily(name="likes", shard_count=10)
        resized = family.with_shard_count(20)
        assert resized == CounterFamily(name="likes", shard_count=20)
        assert family.shard_count == 10

    def test_frozen(self) -> None:
        family = CounterFamily()
        with pytest.raises(AttributeError):
            family.shard_count = 3  # type: ignore[misc]


class TestDocumentLocation:
    """Tests for DocumentLocation."""

    def test_shard_location_str(self) -> None:
        location = DocumentLocation(
            "posts/p1", "shards", 4, "PARENT#posts/p1", "#SHARD#shards#0004"
        )
        assert location.is_shard
        assert str(location) == "posts/p1/shards/4"

    def test_descriptor_location_str(self) -> None:
        location = DocumentLocation("posts/p1", "shards", None, "PARENT#posts/p1", "#FAMILY#shards")
        assert not location.is_shard
        assert str(location) == "posts/p1/shards"

    def test_record_index(self) -> None:
        location = DocumentLocation(
            "posts/p1", "shards", 7, "PARENT#posts/p1", "#SHARD#shards#0007"
        )
        record = ShardRecord(location=location, fields={"likes": 2})
        assert record.index == 7


class TestStoreCapabilities:
    """Tests for StoreCapabilities."""

    def test_defaults(self) -> None:
        caps = StoreCapabilities()
        assert caps.supports_atomic_upsert is False
        assert caps.supports_conditional_create is True
        assert caps.atomic_batches is True
        assert caps.max_batch_size is None
