"""Document store protocol for counter backends.

This module defines the DocumentStoreProtocol that all storage backends must
implement. The protocol uses Python's typing.Protocol with @runtime_checkable,
enabling duck typing and isinstance() checks at runtime.

The counter logic only ever talks to a store through this capability
interface; nothing in it knows which backend product sits behind it.
"""

from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import DocumentLocation, ShardRecord, StoreCapabilities


class WriteMode(Enum):
    """How ``write()`` treats an existing document."""

    CREATE = "create"  # Fail with DocumentExistsError if present
    OVERWRITE = "overwrite"  # Create or replace


@runtime_checkable
class BatchProtocol(Protocol):
    """
    A batch of create-or-replace writes committed together.

    Example:
        batch = store.batch()
        for location in locations:
            batch.set(location, {"likes": 0})
        await batch.commit()
    """

    def set(self, location: "DocumentLocation", fields: Mapping[str, Any]) -> None:
        """Queue a create-or-replace write."""
        ...

    async def commit(self) -> None:
        """
        Apply all queued writes.

        All-or-nothing when the store's capabilities declare
        ``atomic_batches``; best effort otherwise.
        """
        ...


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """
    Protocol for document store backends.

    The protocol is divided into:

    - **Properties**: Capability declaration
    - **Lifecycle**: Connection management
    - **Single-document operations**: read, write, atomic increment
    - **Batch writes**: all-or-nothing multi-document writes
    - **Queries**: enumerate the shard records under a parent

    Example:
        # Custom backend implementation
        class MyStore:
            @property
            def capabilities(self) -> StoreCapabilities:
                return StoreCapabilities(supports_atomic_upsert=True)

            async def read(self, location: DocumentLocation) -> ShardRecord | None:
                ...

        # Duck typing - no inheritance needed
        store = MyStore()
        assert isinstance(store, DocumentStoreProtocol)  # True at runtime
    """

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def capabilities(self) -> "StoreCapabilities":
        """
        Declare which primitives this backend supports.

        Example:
            if store.capabilities.supports_atomic_upsert:
                await store.increment_field(location, "likes", 1, create_if_absent=True)
        """
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """
        Close the backend connection and release resources.

        Safe to call multiple times.
        """
        ...

    # -------------------------------------------------------------------------
    # Single-document operations
    # -------------------------------------------------------------------------

    async def read(self, location: "DocumentLocation") -> "ShardRecord | None":
        """
        Read one document.

        Returns:
            The record if it exists, None otherwise
        """
        ...

    async def write(
        self,
        location: "DocumentLocation",
        fields: Mapping[str, Any],
        mode: WriteMode = WriteMode.OVERWRITE,
    ) -> None:
        """
        Write one document with exactly the given fields.

        Args:
            location: Document location
            fields: Field values to store
            mode: CREATE fails if the document exists; OVERWRITE replaces it

        Raises:
            DocumentExistsError: If mode is CREATE and the document exists
        """
        ...

    async def increment_field(
        self,
        location: "DocumentLocation",
        field: str,
        delta: int,
        create_if_absent: bool = False,
    ) -> None:
        """
        Atomically add ``delta`` to one field, server-side.

        A missing field on an existing document is treated as 0.

        Args:
            location: Document location
            field: Field name
            delta: Amount to add (may be negative)
            create_if_absent: Create the document as ``{field: delta}`` if it
                does not exist, in the same atomic operation
        """
        ...

    # -------------------------------------------------------------------------
    # Batch writes
    # -------------------------------------------------------------------------

    def batch(self) -> BatchProtocol:
        """Start a new batch of writes."""
        ...

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query(self, parent_path: str, family: str) -> "list[ShardRecord]":
        """
        Get every shard record of a family under a parent.

        No ordering is required or assumed. Descriptor records are not
        included.
        """
        ...
