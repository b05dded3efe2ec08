"""
Chat Session Controller - Orchestrates the chat repository and the
enrichment pipeline for one signed-in user.

Local state (``chats``) is a cache: it is updated optimistically and then
replaced wholesale by every snapshot the repository subscription delivers.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from ..enrichment import ResponseEnrichmentPipeline
from ..models import Attachment, ChatMessage, ChatSession, utc_now_iso
from ..services.chat_repository import ChatRepository
from .logging_config import LoggerAdapter

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New chat"
CONNECTION_ERROR_BANNER = "Connection error. Check your connection and try again."


class ConfirmationRequired(Exception):
    """Raised when an irreversible action is requested without confirmation."""


class ChatNotFound(Exception):
    """Raised when a chat id is not in the current list."""


_last_chat_id = 0


def generate_chat_id() -> str:
    """Millisecond timestamp id, bumped so ids from this process never repeat."""
    global _last_chat_id
    candidate = time.time_ns() // 1_000_000
    if candidate <= _last_chat_id:
        candidate = _last_chat_id + 1
    _last_chat_id = candidate
    return str(candidate)


class ChatSessionController:
    """
    Chat lifecycle for one user: create, send, trash, restore, pin, delete.

    At most one model call is outstanding per controller; a second ``send``
    while one is in flight is dropped.
    """

    def __init__(
        self,
        repository: ChatRepository,
        pipeline: ResponseEnrichmentPipeline,
        title_max_length: int = 30,
        send_timeout: float = 120.0,
        id_factory: Callable[[], str] = generate_chat_id,
    ):
        """
        Args:
            repository: Persistence for the user's chats
            pipeline: Produces model replies
            title_max_length: Characters of the first message used as title
            send_timeout: Seconds to wait for a reply before giving up
            id_factory: Chat id generator
        """
        self.repository = repository
        self.pipeline = pipeline
        self.title_max_length = title_max_length
        self.send_timeout = send_timeout
        self.id_factory = id_factory
        self.log = LoggerAdapter(logger, {"user": repository.email})

        self.chats: List[ChatSession] = []
        self.current_chat_id: Optional[str] = None
        self.error: Optional[str] = None
        self.is_sending = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    # --- Lifecycle ---

    async def start(self) -> List[ChatSession]:
        """
        Subscribe to live updates and purge expired trash once.

        Returns:
            The chats removed by the retention sweep
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.repository.subscribe(self._on_update)
        chats = await self.repository.fetch_all()
        return await self.repository.sweep_expired_trash(chats)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_update(self, chats: List[ChatSession]) -> None:
        self.chats = list(chats)
        if self.current_chat_id and self.find(self.current_chat_id) is None:
            self.current_chat_id = None

    # --- Views ---

    def find(self, chat_id: str) -> Optional[ChatSession]:
        for chat in self.chats:
            if chat.id == chat_id:
                return chat
        return None

    def _require(self, chat_id: str) -> ChatSession:
        chat = self.find(chat_id)
        if chat is None:
            raise ChatNotFound(chat_id)
        return chat

    @property
    def current_chat(self) -> Optional[ChatSession]:
        if self.current_chat_id is None:
            return None
        return self.find(self.current_chat_id)

    def select(self, chat_id: Optional[str]) -> Optional[ChatSession]:
        """Make ``chat_id`` the current chat, or clear the selection with None."""
        if chat_id is None:
            self.current_chat_id = None
            return None
        chat = self._require(chat_id)
        self.current_chat_id = chat.id
        return chat

    def active_chats(self, query: str = "") -> List[ChatSession]:
        """Chats not in the trash, optionally matching ``query`` in title or text."""
        active = [chat for chat in self.chats if not chat.is_trashed]
        if not query:
            return active
        return [
            chat for chat in active
            if query in chat.title or any(query in message.text for message in chat.messages)
        ]

    def trashed_chats(self) -> List[ChatSession]:
        return [chat for chat in self.chats if chat.is_trashed]

    def dismiss_error(self) -> None:
        self.error = None

    # --- Sending ---

    def _title_from(self, text: str) -> str:
        return text.strip()[:self.title_max_length] or DEFAULT_TITLE

    def _insert_new_chat(self, title: str) -> ChatSession:
        chat = ChatSession(id=self.id_factory(), title=title, date=utc_now_iso())
        self.chats.insert(0, chat)
        self.current_chat_id = chat.id
        return chat

    async def create_new_session(self) -> ChatSession:
        """Start an empty chat, select it and persist it."""
        chat = self._insert_new_chat(DEFAULT_TITLE)
        await self.repository.save(chat)
        self.log.info(f"Chat {chat.id} created")
        return chat

    async def send(
        self,
        text: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> Optional[ChatMessage]:
        """
        Send a user message in the current chat and append the reply.

        The user message stays in the chat even when the reply fails; in
        that case ``error`` is set and None is returned.

        Returns:
            The model message, or None if nothing was sent or the reply failed
        """
        attachments = list(attachments or [])
        if (not text.strip() and not attachments) or self.is_sending:
            return None

        self.is_sending = True
        self.error = None
        try:
            chat = self.current_chat or self._insert_new_chat(self._title_from(text))
            chat.messages.append(ChatMessage(role="user", text=text))
            if len(chat.messages) == 1:
                chat.title = self._title_from(text)
            history = list(chat.messages[:-1])
            chat_id = chat.id
            await self.repository.save(chat)

            try:
                reply = await asyncio.wait_for(
                    self.pipeline.respond(history, text, attachments),
                    timeout=self.send_timeout,
                )
            except Exception as e:
                self.log.error(f"Reply for chat {chat_id} failed: {e!r}", exc_info=True)
                self.error = CONNECTION_ERROR_BANNER
                return None

            # The subscription may have replaced our copy meanwhile.
            latest = self.find(chat_id)
            if latest is not None and len(latest.messages) >= len(chat.messages):
                chat = latest
            model_message = ChatMessage(role="model", text=reply)
            chat.messages.append(model_message)
            await self.repository.save(chat)
            return model_message
        finally:
            self.is_sending = False

    async def retry_last(self) -> Optional[ChatMessage]:
        """
        Resend the last user message of the current chat if it got no reply.

        The unanswered message is spliced out and sent again. Messages
        without text (attachments only) are not retried.
        """
        chat = self.current_chat
        if chat is None or self.is_sending or not chat.messages:
            return None
        if chat.messages[-1].role != "user" or not chat.messages[-1].text.strip():
            return None
        last = chat.messages.pop()
        return await self.send(last.text)

    # --- Trash ---

    async def trash(self, chat_id: str) -> bool:
        chat = self._require(chat_id)
        ok = await self.repository.move_to_trash(chat_id, chat)
        if ok and self.current_chat_id == chat_id:
            self.current_chat_id = None
        return ok

    async def restore(self, chat_id: str) -> bool:
        chat = self._require(chat_id)
        return await self.repository.restore(chat_id, chat)

    async def pin(self, chat_id: str) -> bool:
        """Toggle the pinned flag."""
        chat = self._require(chat_id)
        updated = chat.model_copy(update={"is_pinned": not chat.is_pinned}, deep=True)
        if not await self.repository.save(updated):
            return False
        # Without a live subscription no snapshot replaces the cached copy.
        if self.find(chat_id) is chat:
            chat.is_pinned = updated.is_pinned
        return True

    async def permanently_delete(self, chat_id: str, confirmed: bool = False) -> bool:
        if not confirmed:
            raise ConfirmationRequired(f"Deleting chat {chat_id} cannot be undone")
        self._require(chat_id)
        ok = await self.repository.permanently_delete(chat_id)
        if ok and self.current_chat_id == chat_id:
            self.current_chat_id = None
        return ok

    async def empty_trash(self, confirmed: bool = False) -> bool:
        if not confirmed:
            raise ConfirmationRequired("Emptying the trash cannot be undone")
        return await self.repository.empty_trash(self.trashed_chats())
