"""In-memory document store.

Implements DocumentStoreProtocol on a plain dict. Useful for tests, local
development, and as the reference behavior for other adapters. Every
operation completes without yielding to the event loop, so each call is
atomic with respect to other coroutines on the same loop.
"""

import copy
from collections.abc import Mapping
from typing import Any

from .exceptions import BatchTooLargeError, DocumentExistsError, DocumentNotFoundError
from .models import DocumentLocation, ShardRecord, StoreCapabilities
from .store_protocol import WriteMode


class InMemoryBatch:
    """Batch applied to the store in one step on commit."""

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._writes: list[tuple[DocumentLocation, dict[str, Any]]] = []

    def set(self, location: DocumentLocation, fields: Mapping[str, Any]) -> None:
        self._writes.append((location, dict(fields)))

    def __len__(self) -> int:
        return len(self._writes)

    async def commit(self) -> None:
        max_size = self._store.capabilities.max_batch_size
        if max_size is not None and len(self._writes) > max_size:
            raise BatchTooLargeError(len(self._writes), max_size)
        for location, fields in self._writes:
            self._store._put(location, fields)


class InMemoryStore:
    """
    Dict-backed document store.

    Args:
        supports_atomic_upsert: Whether to advertise the create-or-increment
            primitive (turn off to exercise the read-then-write path)
        max_batch_size: Maximum writes per batch (None = unbounded)
    """

    def __init__(
        self,
        supports_atomic_upsert: bool = True,
        max_batch_size: int | None = None,
    ) -> None:
        self._capabilities = StoreCapabilities(
            supports_atomic_upsert=supports_atomic_upsert,
            supports_conditional_create=True,
            atomic_batches=True,
            max_batch_size=max_batch_size,
        )
        self._documents: dict[tuple[str, str], ShardRecord] = {}

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def close(self) -> None:
        pass

    def _put(self, location: DocumentLocation, fields: Mapping[str, Any]) -> None:
        self._documents[(location.pk, location.sk)] = ShardRecord(
            location=location, fields=copy.deepcopy(dict(fields))
        )

    async def read(self, location: DocumentLocation) -> ShardRecord | None:
        record = self._documents.get((location.pk, location.sk))
        if record is None:
            return None
        return ShardRecord(location=record.location, fields=copy.deepcopy(record.fields))

    async def write(
        self,
        location: DocumentLocation,
        fields: Mapping[str, Any],
        mode: WriteMode = WriteMode.OVERWRITE,
    ) -> None:
        if mode is WriteMode.CREATE and (location.pk, location.sk) in self._documents:
            raise DocumentExistsError(location)
        self._put(location, fields)

    async def increment_field(
        self,
        location: DocumentLocation,
        field: str,
        delta: int,
        create_if_absent: bool = False,
    ) -> None:
        record = self._documents.get((location.pk, location.sk))
        if record is None:
            if not create_if_absent:
                raise DocumentNotFoundError(location)
            self._put(location, {field: delta})
            return
        record.fields[field] = record.fields.get(field, 0) + delta

    def batch(self) -> InMemoryBatch:
        return InMemoryBatch(self)

    async def query(self, parent_path: str, family: str) -> list[ShardRecord]:
        return [
            ShardRecord(location=record.location, fields=copy.deepcopy(record.fields))
            for record in self._documents.values()
            if record.location.parent_path == parent_path
            and record.location.family == family
            and record.location.is_shard
        ]
