"""
Device session API endpoints - sign this device in and out.
"""

from fastapi import APIRouter, Depends, status

from ..models import SessionSignIn, SessionUser
from ..services import SessionStore
from .deps import ControllerRegistry, get_current_user, get_registry, get_session_store

router = APIRouter(prefix="/session", tags=["session"])


@router.post("", response_model=SessionUser, status_code=status.HTTP_201_CREATED)
async def sign_in(
    body: SessionSignIn,
    session_store: SessionStore = Depends(get_session_store),
):
    """Remember ``email`` as the signed-in user of this device for automatic sign-in."""
    session_store.create_session(body.email, body.name)
    return SessionUser(email=body.email, name=body.name)


@router.get("", response_model=SessionUser)
async def current_session(user: SessionUser = Depends(get_current_user)):
    """Return the signed-in user; 401 if the device session is missing or expired."""
    return user


@router.delete("")
async def sign_out(
    session_store: SessionStore = Depends(get_session_store),
    registry: ControllerRegistry = Depends(get_registry),
):
    user = session_store.get_session()
    session_store.clear_session()
    if user is not None:
        registry.remove(user.email)
    return {"status": "signed_out"}
