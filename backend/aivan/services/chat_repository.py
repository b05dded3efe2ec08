"""
Chat Repository - Persists one user's chat sessions in the document store.

Deletion is two-staged: ``move_to_trash`` only stamps ``deletedAt`` on the
document, ``permanently_delete`` / ``empty_trash`` remove it. Trash older
than the retention window is purged by ``sweep_expired_trash``.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..core.logging_config import LoggerAdapter
from ..models import ChatSession
from ..storage import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 450

ChatsCallback = Callable[[List[ChatSession]], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class ChatRepository:
    """
    CRUD and trash lifecycle for the chats of a single user.

    Documents live at ``users/{email}/chats/{chat_id}``.
    """

    def __init__(
        self,
        store: DocumentStore,
        email: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retention_days: int = 30,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Args:
            store: Document store holding the chats
            email: Owner of the chats
            chunk_size: Deletions committed per atomic batch
            retention_days: Age after which trashed chats are purged
            clock: Source of the current time
        """
        self.store = store
        self.email = email
        self.chunk_size = chunk_size
        self.retention = timedelta(days=retention_days)
        self.clock = clock
        self.log = LoggerAdapter(logger, {"user": email})

    @property
    def user_path(self) -> str:
        return f"users/{self.email}"

    @property
    def collection(self) -> str:
        return f"{self.user_path}/chats"

    def _chat_path(self, chat_id: str) -> str:
        return f"{self.collection}/{chat_id}"

    def _to_chats(self, documents: List[Dict[str, Any]]) -> List[ChatSession]:
        chats = []
        for document in documents:
            try:
                chats.append(ChatSession.model_validate(document))
            except ValidationError as e:
                self.log.warning(f"Skipping malformed chat document {document.get('id')}: {e}")
        return chats

    async def save(self, chat: ChatSession) -> bool:
        """
        Upsert a chat.

        The document is serialized before the write is awaited, so later
        changes to ``chat`` cannot leak into the in-flight write.
        """
        try:
            document = json.loads(json.dumps(chat.to_document()))
            await self.store.set(self._chat_path(chat.id), document, merge=True)
            self.log.debug(f"Chat {chat.id} saved ({len(chat.messages)} messages)")
            return True
        except Exception as e:
            self.log.error(f"Failed to save chat {chat.id}: {e}", exc_info=True)
            return False

    async def move_to_trash(self, chat_id: str, chat: ChatSession) -> bool:
        """Soft delete: stamp ``deletedAt`` with the current time."""
        try:
            document = {**chat.to_document(), "deletedAt": self.clock().isoformat()}
            await self.store.set(self._chat_path(chat_id), document, merge=True)
            self.log.info(f"Chat {chat_id} moved to trash")
            return True
        except Exception as e:
            self.log.error(f"Failed to move chat {chat_id} to trash: {e}", exc_info=True)
            return False

    async def restore(self, chat_id: str, chat: ChatSession) -> bool:
        """Clear ``deletedAt`` so the chat is active again."""
        try:
            document = {**chat.to_document(), "deletedAt": None}
            await self.store.set(self._chat_path(chat_id), document, merge=True)
            self.log.info(f"Chat {chat_id} restored")
            return True
        except Exception as e:
            self.log.error(f"Failed to restore chat {chat_id}: {e}", exc_info=True)
            return False

    async def permanently_delete(self, chat_id: str) -> bool:
        """Remove a chat for good."""
        try:
            await self.store.delete(self._chat_path(chat_id))
            self.log.info(f"Chat {chat_id} permanently deleted")
            return True
        except Exception as e:
            self.log.error(f"Failed to permanently delete chat {chat_id}: {e}", exc_info=True)
            return False

    async def empty_trash(self, chats: List[ChatSession]) -> bool:
        """
        Permanently delete ``chats`` in atomic batches of ``chunk_size``.

        Batches are independent: when one fails, earlier batches stay
        committed and the remaining ones are not attempted. Callers should
        re-read the trash instead of assuming what is left.

        Returns:
            bool: True if every batch committed
        """
        if not chats:
            return True

        self.log.info(f"Emptying trash: {len(chats)} chats")
        committed = 0
        for start in range(0, len(chats), self.chunk_size):
            chunk = chats[start:start + self.chunk_size]
            try:
                batch = self.store.batch()
                for chat in chunk:
                    batch.delete(self._chat_path(chat.id))
                await batch.commit()
            except Exception as e:
                self.log.error(
                    f"Failed to empty trash after {committed} of {len(chats)} chats: {e}",
                    exc_info=True,
                    extra={"extra_fields": {"committed": committed, "requested": len(chats)}}
                )
                return False
            committed += len(chunk)

        self.log.info(f"Trash emptied: {committed} chats")
        return True

    def expired_trash(self, chats: List[ChatSession]) -> List[ChatSession]:
        """Trashed chats older than the retention window."""
        now = self.clock()
        expired = []
        for chat in chats:
            if not chat.deleted_at:
                continue
            deleted_at = _parse_timestamp(chat.deleted_at)
            if deleted_at is not None and now - deleted_at > self.retention:
                expired.append(chat)
        return expired

    async def sweep_expired_trash(self, chats: List[ChatSession]) -> List[ChatSession]:
        """
        Purge trashed chats older than the retention window.

        Returns:
            The chats that were selected for deletion
        """
        expired = self.expired_trash(chats)
        if expired:
            self.log.info(f"Sweeping {len(expired)} expired chats from trash")
            await self.empty_trash(expired)
        return expired

    async def fetch_all(self) -> List[ChatSession]:
        """All chats, newest first. Returns an empty list on failure."""
        try:
            documents = await self.store.query(self.collection, order_by="date", descending=True)
        except Exception as e:
            self.log.error(f"Failed to fetch chats: {e}", exc_info=True)
            return []
        return self._to_chats(documents)

    def subscribe(self, on_update: ChatsCallback) -> Callable[[], None]:
        """
        Receive the complete, newest-first chat list on every change.

        A failing listener delivers one empty list instead of raising, so
        an empty update may also mean that listening stopped.

        Returns:
            A callable that stops the subscription
        """
        def on_data(documents: List[Dict[str, Any]]) -> None:
            on_update(self._to_chats(documents))

        def on_error(error: Exception) -> None:
            self.log.warning(f"Chat subscription failed, listening disabled: {error}")
            on_update([])

        try:
            return self.store.subscribe(
                self.collection, on_data, on_error, order_by="date", descending=True
            )
        except Exception as e:
            self.log.error(f"Error setting up chat subscription: {e}", exc_info=True)
            return lambda: None

    async def export_data(self) -> Dict[str, Any]:
        """Everything stored for the user, for a data export."""
        chats = await self.fetch_all()
        return {
            "userEmail": self.email,
            "exportDate": self.clock().isoformat(),
            "chats": [chat.to_document() for chat in chats],
        }

    async def delete_account(self) -> bool:
        """Delete every chat and then the user document."""
        chats = await self.fetch_all()
        if not await self.empty_trash(chats):
            return False
        try:
            await self.store.delete(self.user_path)
        except Exception as e:
            self.log.error(f"Failed to delete user document: {e}", exc_info=True)
            return False
        self.log.info("Account deleted")
        return True
