"""Unit test fixtures using moto."""

import asyncio
from collections.abc import Awaitable
from unittest.mock import Mock, patch

import pytest
from moto import mock_aws

from loop_counters import CounterFamily, InMemoryStore, ShardedCounter, SyncShardedCounter
from loop_counters.repository import Repository

TABLE_NAME = "test-counters"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # Unset AWS_ENDPOINT_URL to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Mock DynamoDB for tests."""
    with mock_aws():
        yield


def _patch_aiobotocore_response():
    """
    Patch aiobotocore to work with moto's sync responses.

    Moto returns botocore.awsrequest.AWSResponse which has sync content,
    but aiobotocore expects async content. This patch wraps the response
    handling to convert sync content to async.

    See: https://github.com/aio-libs/aiobotocore/discussions/1300
    """
    from aiobotocore import endpoint

    original_convert = endpoint.convert_to_response_dict

    async def patched_convert(http_response, operation_model):
        # If content is not awaitable (moto's sync response), wrap it
        if hasattr(http_response, "_content") and not isinstance(http_response._content, Awaitable):
            fut: asyncio.Future[bytes] = asyncio.Future()
            fut.set_result(http_response.content)
            http_response._content = fut
        return await original_convert(http_response, operation_model)

    return patch.object(endpoint, "convert_to_response_dict", patched_convert)


def fixed_rng(*indexes: int) -> Mock:
    """Random source whose randrange returns the given shard indexes in turn."""
    rng = Mock()
    if len(indexes) == 1:
        rng.randrange.return_value = indexes[0]
    else:
        rng.randrange.side_effect = list(indexes)
    return rng


@pytest.fixture
async def repo(mock_dynamodb):
    """Create a Repository with a mocked DynamoDB table."""
    with _patch_aiobotocore_response():
        repo = Repository(TABLE_NAME, region="us-east-1")
        await repo.create_table()
        async with repo:
            yield repo


@pytest.fixture
def store() -> InMemoryStore:
    """Create an empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
async def counter(store):
    """Create a ShardedCounter over the in-memory store."""
    async with ShardedCounter(store, family=CounterFamily(shard_count=10)) as counter:
        yield counter


@pytest.fixture
async def dynamo_counter(repo):
    """Create a ShardedCounter over the mocked DynamoDB table."""
    yield ShardedCounter(repo, family=CounterFamily(shard_count=10))


@pytest.fixture
def sync_counter(mock_dynamodb):
    """Create a SyncShardedCounter with mocked DynamoDB."""
    with _patch_aiobotocore_response():
        counter = SyncShardedCounter.for_dynamodb(
            TABLE_NAME, region="us-east-1", family=CounterFamily(shard_count=5)
        )
        counter._run(counter.store.create_table())
        with counter:
            yield counter


@pytest.fixture
def make_rng():
    """Factory for random sources with predetermined shard indexes."""
    return fixed_rng
