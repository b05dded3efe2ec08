"""Storage module - provides interfaces and implementations for data persistence."""

from .interface import (
    MAX_BATCH_OPERATIONS,
    BatchLimitExceeded,
    DocumentStore,
    KeyValueStore,
    StoreError,
    WriteBatch,
)
from .local_storage import LocalStorage, LocalWriteBatch
from .local_kv import LocalKeyValueStore, MemoryKeyValueStore

__all__ = [
    'MAX_BATCH_OPERATIONS', 'BatchLimitExceeded', 'DocumentStore', 'KeyValueStore',
    'StoreError', 'WriteBatch', 'LocalStorage', 'LocalWriteBatch',
    'LocalKeyValueStore', 'MemoryKeyValueStore'
]
