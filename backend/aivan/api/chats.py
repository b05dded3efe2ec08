"""
Chat API endpoints - Chat sessions, messages and the trash.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..core.chat_controller import ChatNotFound, ChatSessionController, ConfirmationRequired
from ..models import Attachment, ChatMessage, ChatSession
from .deps import get_controller

router = APIRouter(prefix="/chats", tags=["chats"])


class SendMessageRequest(BaseModel):
    """A user message, optionally addressed to an existing chat."""
    text: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    chat_id: Optional[str] = Field(default=None, alias="chatId")

    class Config:
        populate_by_name = True


class RetryRequest(BaseModel):
    chat_id: str = Field(alias="chatId")

    class Config:
        populate_by_name = True


class SendMessageResponse(BaseModel):
    chat: ChatSession
    reply: ChatMessage


def _not_found(chat_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Chat {chat_id} not found"
    )


def _storage_failed() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Chat storage is unavailable, please try again"
    )


def _select(controller: ChatSessionController, chat_id: Optional[str]) -> None:
    try:
        controller.select(chat_id)
    except ChatNotFound:
        raise _not_found(chat_id)


async def _reply_or_error(controller: ChatSessionController, reply: Optional[ChatMessage]) -> SendMessageResponse:
    if reply is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=controller.error or "No reply"
        )
    chat = controller.current_chat
    if chat is None:
        raise _storage_failed()
    return SendMessageResponse(chat=chat, reply=reply)


@router.get("", response_model=List[ChatSession])
async def list_chats(
    q: str = Query("", description="Search in titles and message text"),
    controller: ChatSessionController = Depends(get_controller),
):
    """Active chats, newest first."""
    return controller.active_chats(q)


@router.get("/trash", response_model=List[ChatSession])
async def list_trash(controller: ChatSessionController = Depends(get_controller)):
    """Chats in the trash."""
    return controller.trashed_chats()


@router.post("/trash/empty")
async def empty_trash(
    confirm: bool = Query(False, description="Must be true: this cannot be undone"),
    controller: ChatSessionController = Depends(get_controller),
):
    """Permanently delete every chat in the trash."""
    count = len(controller.trashed_chats())
    try:
        ok = await controller.empty_trash(confirmed=confirm)
    except ConfirmationRequired as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not ok:
        # Some batches may have committed; the client should reload the trash.
        raise _storage_failed()
    return {"deleted": count}


@router.get("/export")
async def export_chats(controller: ChatSessionController = Depends(get_controller)):
    """All stored chats of the user as one JSON document."""
    return await controller.repository.export_data()


@router.post("", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
async def create_chat(controller: ChatSessionController = Depends(get_controller)):
    """Start a new, empty chat."""
    return await controller.create_new_session()


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    controller: ChatSessionController = Depends(get_controller),
):
    """
    Send a user message and wait for the assistant's reply.

    Without ``chatId`` a new chat is started. If the reply fails the user
    message is kept and 503 carries the error banner text.
    """
    if not body.text.strip() and not body.attachments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message text or an attachment is required"
        )
    if controller.is_sending:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="A message is already being answered"
        )

    _select(controller, body.chat_id)
    reply = await controller.send(body.text, body.attachments)
    return await _reply_or_error(controller, reply)


@router.post("/retry", response_model=SendMessageResponse)
async def retry_message(
    body: RetryRequest,
    controller: ChatSessionController = Depends(get_controller),
):
    """Resend the last unanswered user message of a chat."""
    if controller.is_sending:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="A message is already being answered"
        )
    _select(controller, body.chat_id)
    chat = controller.current_chat
    last = chat.messages[-1] if chat.messages else None
    if last is None or last.role != "user" or not last.text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nothing to retry"
        )
    reply = await controller.retry_last()
    return await _reply_or_error(controller, reply)


@router.get("/{chat_id}", response_model=ChatSession)
async def get_chat(chat_id: str, controller: ChatSessionController = Depends(get_controller)):
    chat = controller.find(chat_id)
    if chat is None:
        raise _not_found(chat_id)
    return chat


@router.post("/{chat_id}/trash")
async def trash_chat(chat_id: str, controller: ChatSessionController = Depends(get_controller)):
    """Move a chat to the trash."""
    try:
        ok = await controller.trash(chat_id)
    except ChatNotFound:
        raise _not_found(chat_id)
    if not ok:
        raise _storage_failed()
    return {"status": "trashed"}


@router.post("/{chat_id}/restore")
async def restore_chat(chat_id: str, controller: ChatSessionController = Depends(get_controller)):
    """Bring a chat back from the trash."""
    try:
        ok = await controller.restore(chat_id)
    except ChatNotFound:
        raise _not_found(chat_id)
    if not ok:
        raise _storage_failed()
    return {"status": "restored"}


@router.post("/{chat_id}/pin", response_model=ChatSession)
async def pin_chat(chat_id: str, controller: ChatSessionController = Depends(get_controller)):
    """Toggle the pinned flag of a chat."""
    try:
        ok = await controller.pin(chat_id)
    except ChatNotFound:
        raise _not_found(chat_id)
    if not ok:
        raise _storage_failed()
    return controller.find(chat_id)


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    confirm: bool = Query(False, description="Must be true: this cannot be undone"),
    controller: ChatSessionController = Depends(get_controller),
):
    """Permanently delete a chat."""
    try:
        ok = await controller.permanently_delete(chat_id, confirmed=confirm)
    except ConfirmationRequired as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ChatNotFound:
        raise _not_found(chat_id)
    if not ok:
        raise _storage_failed()
    return {"status": "deleted"}
