"""
Storage Interfaces - Contracts for the remote document store and the
device-local key-value store.

The chat repository only depends on these abstractions, so the local
implementations can be swapped for a hosted document database (Firestore
and the like) without touching the lifecycle logic.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

# Hosted document stores reject batches above this many mutations.
MAX_BATCH_OPERATIONS = 500

Document = Dict[str, Any]
WhereClause = Tuple[str, str, Any]  # (field, operator, value)
SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class StoreError(Exception):
    """Raised when the document store cannot complete an operation."""


class BatchLimitExceeded(StoreError):
    """Raised when more than MAX_BATCH_OPERATIONS are queued in one batch."""


class WriteBatch(ABC):
    """A group of writes committed atomically."""

    @abstractmethod
    def set(self, path: str, data: Document, merge: bool = False) -> "WriteBatch":
        pass

    @abstractmethod
    def delete(self, path: str) -> "WriteBatch":
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Apply every queued operation, or none of them."""
        pass


class DocumentStore(ABC):
    """
    Document database contract.

    Paths are slash separated and alternate collection and document ids,
    e.g. ``users/{email}/chats/{chat_id}``.
    """

    @abstractmethod
    async def get(self, path: str) -> Optional[Document]:
        """
        Read one document.

        Returns:
            The document data, or None if it does not exist
        """
        pass

    @abstractmethod
    async def set(self, path: str, data: Document, merge: bool = False) -> None:
        """
        Write a document.

        Args:
            path: Document path
            data: Fields to write
            merge: Merge top-level fields into the existing document instead
                of replacing it
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: Optional[List[WhereClause]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Document]:
        """
        Read every document of a collection.

        Args:
            collection: Collection path
            where: Optional (field, operator, value) filters, operators
                ``==, !=, <, <=, >, >=``
            order_by: Optional field to sort on
            descending: Sort direction

        Returns:
            List of documents in query order
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        on_data: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """
        Open a live query.

        ``on_data`` receives the complete ordered result set once right
        away and again after every change to the collection. ``on_error``
        is called if the listener breaks; no further data follows.

        Returns:
            A callable that stops the listener
        """
        pass

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""
        pass


class KeyValueStore(ABC):
    """Synchronous device-local string store that survives restarts."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass
