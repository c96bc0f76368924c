"""Tests for exception classes."""

import pytest

from loop_counters import schema
from loop_counters.exceptions import (
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


class TestCounterError:
    """Tests for CounterError message formatting."""

    def test_message_only(self) -> None:
        err = CounterError("Something broke")
        assert str(err) == "Something broke"
        assert err.cause is None

    def test_message_with_context(self) -> None:
        err = CounterError("Failed", parent_path="posts/p1", family="shards", field="likes")
        assert str(err) == "Failed [parent=posts/p1, family=shards, field=likes]"

    def test_message_with_cause(self) -> None:
        cause = RuntimeError("boom")
        err = ShardWriteFailed("Failed to increment shard", cause, parent_path="posts/p1")
        assert err.cause is cause
        assert "[parent=posts/p1]" in str(err)
        assert "(RuntimeError: boom)" in str(err)

    @pytest.mark.parametrize(
        "exc_class",
        [BatchWriteFailed, ShardReadFailed, ShardWriteFailed, AggregationQueryFailed],
    )
    def test_counter_failures_share_category(self, exc_class: type) -> None:
        err = exc_class("Failed")
        assert isinstance(err, CounterError)
        assert isinstance(err, LoopCountersError)


class TestStoreErrors:
    """Tests for store adapter exceptions."""

    def test_document_exists(self) -> None:
        location = schema.shard_location("posts/p1", 3)
        err = DocumentExistsError(location)
        assert err.location is location
        assert str(err) == "Document already exists: posts/p1/shards/3"
        assert isinstance(err, StoreError)

    def test_document_not_found(self) -> None:
        location = schema.shard_location("posts/p1", 0)
        err = DocumentNotFoundError(location)
        assert "posts/p1/shards/0" in str(err)
        assert isinstance(err, StoreError)

    def test_batch_too_large(self) -> None:
        err = BatchTooLargeError(120, 100)
        assert err.size == 120
        assert err.max_size == 100
        assert "120" in str(err)
        assert "100" in str(err)


class TestValidationError:
    """Tests for ValidationError."""

    def test_attributes(self) -> None:
        err = ValidationError("delta", "x", "Delta must be an integer")
        assert err.field == "delta"
        assert err.value == "x"
        assert err.reason == "Delta must be an integer"
        assert str(err) == "Invalid delta 'x': Delta must be an integer"

    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            raise ValidationError("field", "", "empty")


class TestSearchAndFeedErrors:
    """Tests for search and feed exceptions."""

    def test_search_failed(self) -> None:
        cause = ConnectionError("down")
        err = SearchFailed("jo", "prefix", cause)
        assert err.term == "jo"
        assert err.provider == "prefix"
        assert err.cause is cause
        assert str(err) == "Error searching users for 'jo' via prefix: down"
        assert isinstance(err, LoopCountersError)

    def test_feed_query_failed(self) -> None:
        cause = TimeoutError("slow")
        err = FeedQueryFailed("u1", cause)
        assert err.user_id == "u1"
        assert err.cause is cause
        assert "u1" in str(err)
        assert isinstance(err, LoopCountersError)
