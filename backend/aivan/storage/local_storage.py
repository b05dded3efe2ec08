"""
Local Filesystem Document Store.
Stores each document as a JSON file under a base directory and fans out
snapshots to live subscribers in-process.
"""

import asyncio
import copy
import itertools
import json
import logging
import operator
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import aiofiles.os

from .interface import (
    MAX_BATCH_OPERATIONS,
    BatchLimitExceeded,
    Document,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoreError,
    Unsubscribe,
    WhereClause,
    WriteBatch,
)

logger = logging.getLogger(__name__)

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _collection_of(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


class _Listener:
    def __init__(self, collection: str, on_data: SnapshotCallback,
                 on_error: Optional[ErrorCallback], order_by: Optional[str], descending: bool):
        self.collection = collection
        self.on_data = on_data
        self.on_error = on_error
        self.order_by = order_by
        self.descending = descending


class LocalWriteBatch(WriteBatch):
    """Write batch for LocalStorage."""

    def __init__(self, store: "LocalStorage"):
        self._store = store
        self._operations: List[Tuple[str, str, Optional[Document], bool]] = []
        self._committed = False

    def _queue(self, op: str, path: str, data: Optional[Document], merge: bool) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        if len(self._operations) >= MAX_BATCH_OPERATIONS:
            raise BatchLimitExceeded(
                f"A batch accepts at most {MAX_BATCH_OPERATIONS} operations"
            )
        self._operations.append((op, path, data, merge))

    def set(self, path: str, data: Document, merge: bool = False) -> "LocalWriteBatch":
        self._queue("set", path, copy.deepcopy(data), merge)
        return self

    def delete(self, path: str) -> "LocalWriteBatch":
        self._queue("delete", path, None, False)
        return self

    def __len__(self) -> int:
        return len(self._operations)

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._committed = True
        await self._store._apply(self._operations)


class LocalStorage(DocumentStore):
    """
    Local filesystem document store.

    Documents are cached in memory (loaded once at start-up) and written
    through to ``<base_dir>/<path>.json``.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Initialize local storage with a base directory.

        Args:
            base_dir: Base directory for all stored documents
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._documents: Dict[str, Document] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._closed = False
        self._write_lock = asyncio.Lock()
        self._load_existing()

    def _load_existing(self) -> None:
        for file_path in self.base_dir.rglob("*.json"):
            path = file_path.relative_to(self.base_dir).with_suffix("").as_posix()
            try:
                self._documents[path] = json.loads(file_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable document {path}: {e}")
        logger.debug(f"Loaded {len(self._documents)} documents from {self.base_dir}")

    def _get_full_path(self, path: str) -> Path:
        """Convert a document path to a file inside the base directory."""
        full_path = (self.base_dir / f"{path}.json").resolve()

        if not full_path.is_relative_to(self.base_dir):
            raise ValueError(f"Invalid path: {path} - path traversal detected")

        return full_path

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("Document store is closed")

    async def _write_file(self, path: str, data: Document) -> None:
        full_path = self._get_full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(full_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data, indent=2, ensure_ascii=False))

    async def _remove_file(self, path: str) -> None:
        full_path = self._get_full_path(path)
        if full_path.exists():
            await aiofiles.os.remove(full_path)

    async def get(self, path: str) -> Optional[Document]:
        self._check_open()
        document = self._documents.get(path)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, path: str, data: Document, merge: bool = False) -> None:
        await self._apply([("set", path, copy.deepcopy(data), merge)])

    async def delete(self, path: str) -> None:
        await self._apply([("delete", path, None, False)])

    def batch(self) -> LocalWriteBatch:
        self._check_open()
        return LocalWriteBatch(self)

    async def _apply(self, operations: List[Tuple[str, str, Optional[Document], bool]]) -> None:
        """
        Write every operation to disk, restoring the previous files on failure.

        Writes are serialized so each one stages on top of the last committed
        state.
        """
        async with self._write_lock:
            await self._apply_locked(operations)

    async def _apply_locked(self, operations: List[Tuple[str, str, Optional[Document], bool]]) -> None:
        self._check_open()
        for _, path, _, _ in operations:
            self._get_full_path(path)

        staged = dict(self._documents)
        for op, path, data, merge in operations:
            if op == "set":
                if merge and path in staged:
                    staged[path] = {**staged[path], **data}
                else:
                    staged[path] = data
            else:
                staged.pop(path, None)

        touched = list(dict.fromkeys(path for _, path, _, _ in operations))
        written: List[str] = []
        try:
            for path in touched:
                if path in staged:
                    await self._write_file(path, staged[path])
                else:
                    await self._remove_file(path)
                written.append(path)
        except OSError as e:
            logger.error(f"Write failed, rolling back {len(written)} documents: {e}", exc_info=True)
            for path in written:
                if path in self._documents:
                    await self._write_file(path, self._documents[path])
                else:
                    await self._remove_file(path)
            raise StoreError(f"Failed to write {len(touched)} documents") from e

        self._documents = staged
        self._notify({_collection_of(path) for path in touched})

    def _select(
        self,
        collection: str,
        where: Optional[List[WhereClause]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Document]:
        results = []
        for path, document in self._documents.items():
            if _collection_of(path) != collection:
                continue
            if where and not all(
                field in document and _OPERATORS[op](document[field], value)
                for field, op, value in where
            ):
                continue
            results.append(copy.deepcopy(document))

        if order_by:
            # Documents missing the field sort last, as with hosted stores.
            present = [d for d in results if d.get(order_by) is not None]
            missing = [d for d in results if d.get(order_by) is None]
            present.sort(key=lambda d: d[order_by], reverse=descending)
            results = present + missing
        return results

    async def query(
        self,
        collection: str,
        where: Optional[List[WhereClause]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Document]:
        self._check_open()
        for _, op, _ in where or []:
            if op not in _OPERATORS:
                raise StoreError(f"Unsupported operator: {op}")
        return self._select(collection, where, order_by, descending)

    def subscribe(
        self,
        collection: str,
        on_data: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        self._check_open()
        listener_id = next(self._listener_ids)
        listener = _Listener(collection, on_data, on_error, order_by, descending)
        self._listeners[listener_id] = listener
        self._deliver(listener)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _deliver(self, listener: _Listener) -> None:
        snapshot = self._select(listener.collection, order_by=listener.order_by,
                                descending=listener.descending)
        try:
            listener.on_data(snapshot)
        except Exception:
            # Observer errors never fail the write.
            logger.exception(f"Subscriber for {listener.collection} raised")

    def _notify(self, collections: set) -> None:
        for listener in list(self._listeners.values()):
            if listener.collection in collections:
                self._deliver(listener)

    def close(self) -> None:
        """Stop accepting operations and fail every open listener."""
        self._closed = True
        listeners = list(self._listeners.values())
        self._listeners.clear()
        for listener in listeners:
            if listener.on_error is not None:
                listener.on_error(StoreError("Document store is closed"))
