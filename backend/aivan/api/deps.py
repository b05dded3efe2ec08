"""
API dependencies - resolve the signed-in device user and their controller.
"""

import asyncio
import logging
from typing import Dict

from fastapi import Depends, HTTPException, Request, status

from ..config import Settings
from ..core.chat_controller import ChatSessionController
from ..enrichment import ResponseEnrichmentPipeline
from ..models import SessionUser
from ..services import ChatRepository, SessionStore
from ..storage import DocumentStore

logger = logging.getLogger(__name__)


class ControllerRegistry:
    """One started controller per signed-in user, created on first use."""

    def __init__(self, store: DocumentStore, pipeline: ResponseEnrichmentPipeline, config: Settings):
        self.store = store
        self.pipeline = pipeline
        self.config = config
        self._controllers: Dict[str, ChatSessionController] = {}
        self._lock = asyncio.Lock()

    def repository_for(self, email: str) -> ChatRepository:
        return ChatRepository(
            self.store,
            email,
            chunk_size=self.config.batch_chunk_size,
            retention_days=self.config.trash_retention_days,
        )

    async def get(self, email: str) -> ChatSessionController:
        async with self._lock:
            controller = self._controllers.get(email)
            if controller is None:
                controller = ChatSessionController(
                    self.repository_for(email),
                    self.pipeline,
                    title_max_length=self.config.title_max_length,
                    send_timeout=self.config.send_timeout_seconds,
                )
                swept = await controller.start()
                if swept:
                    logger.info(
                        f"Retention sweep removed {len(swept)} chats",
                        extra={"extra_fields": {"user": email, "swept": len(swept)}}
                    )
                self._controllers[email] = controller
            return controller

    def remove(self, email: str) -> None:
        controller = self._controllers.pop(email, None)
        if controller is not None:
            controller.stop()

    def close(self) -> None:
        for email in list(self._controllers):
            self.remove(email)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_registry(request: Request) -> ControllerRegistry:
    return request.app.state.registry


def get_current_user(session_store: SessionStore = Depends(get_session_store)) -> SessionUser:
    """
    Dependency returning the user signed in on this device.

    Each authenticated request refreshes the session, so an active device
    stays signed in.

    Raises:
        HTTPException: 401 if there is no valid device session
    """
    user = session_store.get_session()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in on this device",
        )
    session_store.touch()
    return user


async def get_controller(
    user: SessionUser = Depends(get_current_user),
    registry: ControllerRegistry = Depends(get_registry),
) -> ChatSessionController:
    return await registry.get(user.email)
