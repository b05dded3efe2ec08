"""
Account API endpoints - remove everything stored for the signed-in user.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..models import SessionUser
from ..services import SessionStore
from .deps import ControllerRegistry, get_current_user, get_registry, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["account"])


@router.delete("")
async def delete_account(
    confirm: bool = Query(False, description="Must be true: this cannot be undone"),
    user: SessionUser = Depends(get_current_user),
    registry: ControllerRegistry = Depends(get_registry),
    session_store: SessionStore = Depends(get_session_store),
):
    """Delete all chats and the user record, then sign the device out."""
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Deleting the account cannot be undone"
        )

    registry.remove(user.email)
    if not await registry.repository_for(user.email).delete_account():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to delete account data, please try again"
        )

    session_store.clear_session()
    logger.info("Account deleted", extra={"extra_fields": {"user": user.email}})
    return {"status": "deleted"}
